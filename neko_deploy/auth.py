"""Credential providers.

The hosting API accepts either a static API key in the Authorization header
or the browser session cookie. Cookie writes additionally need a CSRF token,
fetched once from the site and reused for the rest of the run.
"""

from typing import Dict, Optional, Union
from urllib.parse import quote

import requests

from neko_deploy.config import Config
from neko_deploy.errors import TransportError

USER_AGENT = "neko-deploy build script (please don't ban us)"


class ApiKeyCredential:
    mode = "api_key"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    def headers(self) -> Dict[str, str]:
        return {"Authorization": self.api_key}

    def form_fields(self, session: requests.Session, timeout) -> Dict[str, str]:
        return {}


class CookieCredential:
    mode = "cookie"

    def __init__(self, token: str, site: str, csrf_url: str) -> None:
        self.token = token
        self.site = site
        self.csrf_url = csrf_url
        self._csrf: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        return {
            "Cookie": f"token={self.token}",
            "User-Agent": USER_AGENT,
            "Referer": f"https://nekoweb.org/?{quote(USER_AGENT)}",
        }

    def csrf(self, session: requests.Session, timeout) -> str:
        """Fetch the anti-forgery token on first use."""
        if self._csrf is None:
            try:
                response = session.get(
                    self.csrf_url, headers=self.headers(), timeout=timeout
                )
                response.raise_for_status()
            except requests.exceptions.RequestException as exc:
                raise TransportError("fetch csrf token", str(exc)) from exc
            self._csrf = response.text.strip()
        return self._csrf

    def form_fields(self, session: requests.Session, timeout) -> Dict[str, str]:
        return {"csrf": self.csrf(session, timeout), "site": self.site}


Credential = Union[ApiKeyCredential, CookieCredential]


def credential_from_config(
    config: Config, cookie: Optional[CookieCredential] = None
) -> Credential:
    """Pick the credential used for API calls. The API key wins when both are set.

    Pass the run's CookieCredential as ``cookie`` so its CSRF token is shared.
    """
    if config.api_key:
        return ApiKeyCredential(config.api_key)
    return cookie or cookie_credential(config)


def cookie_credential(config: Config) -> Optional[CookieCredential]:
    if not config.cookie:
        return None
    return CookieCredential(config.cookie, config.site or "", config.csrf_url)
