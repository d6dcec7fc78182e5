"""HTTP client for the Nekoweb files API.

Wraps the big-upload primitives (create, append, import) plus the limits,
delete and edit endpoints behind typed methods. Nothing here retries: every
failure is mapped to a specific error and handed back to the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import requests

from neko_deploy.auth import CookieCredential, Credential
from neko_deploy.config import Config
from neko_deploy.errors import (
    ChunkAppendError,
    FinalizeError,
    LimitsQueryError,
    RemoteError,
    SessionCreateError,
    TransportError,
)
from neko_deploy.limits import RateLimitStatus


@dataclass(frozen=True)
class UploadSession:
    id: str
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass(frozen=True)
class StepOutcome:
    """Result of a best-effort step. Logged and kept, never raised."""

    step: str
    ok: bool
    error: Optional[Exception] = None


class NekowebClient:
    def __init__(
        self,
        config: Config,
        credential: Credential,
        cookie: Optional[CookieCredential] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.credential = credential
        self.cookie = cookie
        self.base_url = config.api_url.rstrip("/")
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        endpoint: str,
        operation: str,
        error_cls: Callable[..., RemoteError],
        credential: Optional[Credential] = None,
        **kwargs,
    ) -> requests.Response:
        """Send one authenticated request and map failures to ``error_cls``."""
        credential = credential or self.credential
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = dict(credential.headers())
        headers.update(kwargs.pop("headers", {}))
        kwargs.setdefault("timeout", self.config.timeout)

        try:
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise TransportError(operation, str(exc)) from exc

        if not response.ok:
            raise error_cls(operation, _error_detail(response), response.status_code)
        return response

    def _form(self, credential: Optional[Credential] = None, **fields) -> Dict[str, str]:
        credential = credential or self.credential
        data = dict(credential.form_fields(self.session, self.config.timeout))
        data.update(fields)
        return data

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def get_limits(self) -> Dict[str, RateLimitStatus]:
        response = self._request("GET", "/files/limits", "query limits", LimitsQueryError)
        try:
            body = response.json()
            # keys that are not limit objects are ignored
            return {
                category: RateLimitStatus.from_payload(category, payload)
                for category, payload in body.items()
                if isinstance(payload, dict)
            }
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise LimitsQueryError(
                "query limits", f"unexpected response body: {exc}"
            ) from exc

    def get_limit(self, category: str) -> RateLimitStatus:
        limits = self.get_limits()
        if category not in limits:
            raise LimitsQueryError(
                "query limits", f"no {category!r} limit in response"
            )
        return limits[category]

    # ------------------------------------------------------------------
    # Big-upload session
    # ------------------------------------------------------------------

    def create_session(self) -> UploadSession:
        response = self._request(
            "GET", "/files/big/create", "create upload session", SessionCreateError
        )
        try:
            session_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SessionCreateError(
                "create upload session", f"response has no session id: {exc}"
            ) from exc
        if not session_id:
            raise SessionCreateError("create upload session", "empty session id")
        return UploadSession(id=str(session_id))

    def append_chunk(self, session_id: str, index: int, data: bytes) -> None:
        """Send one chunk. Chunk order is carried by call order, not filename."""
        files = {"file": (f"chunk_{index}.part", data, "application/octet-stream")}
        try:
            self._request(
                "POST",
                "/files/big/append",
                f"append chunk {index}",
                lambda op, msg, status=None: ChunkAppendError(index, msg, status),
                data=self._form(id=session_id),
                files=files,
            )
        except TransportError as exc:
            raise ChunkAppendError(index, str(exc)) from exc

    def finalize_session(self, session_id: str) -> None:
        self._request(
            "POST",
            f"/files/import/{session_id}",
            "import upload session",
            FinalizeError,
            data=self._form() or None,
        )

    # ------------------------------------------------------------------
    # Best-effort writes
    # ------------------------------------------------------------------

    def delete_path(self, pathname: str) -> StepOutcome:
        """Delete ``pathname`` on the site. A missing path is not an error."""
        try:
            self._request(
                "POST",
                "/files/delete",
                f"delete {pathname}",
                RemoteError,
                data=self._form(pathname=pathname),
            )
        except RemoteError as exc:
            return StepOutcome(step="remote_clear", ok=False, error=exc)
        return StepOutcome(step="remote_clear", ok=True)

    def touch_entry(self, pathname: str, content: str) -> StepOutcome:
        """Rewrite ``pathname`` through the cookie session to bust the CDN cache."""
        if self.cookie is None:
            return StepOutcome(
                step="cache_bust",
                ok=False,
                error=RemoteError("edit", "no cookie credential configured"),
            )
        try:
            fields = self._form(
                credential=self.cookie, pathname=pathname, content=content
            )
            # multipart body, so every field goes out as a (None, value) part
            self._request(
                "POST",
                "/files/edit",
                f"edit {pathname}",
                RemoteError,
                credential=self.cookie,
                files={name: (None, value) for name, value in fields.items()},
            )
        except RemoteError as exc:
            return StepOutcome(step="cache_bust", ok=False, error=exc)
        return StepOutcome(step="cache_bust", ok=True)

    def close(self) -> None:
        self.session.close()


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason or "no response body"
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    return str(body)[:500]
