"""Configuration for neko_deploy.

Settings come from the process environment, after a ``.env`` file in the
working directory has been loaded. They are validated once and frozen into a
single Config value that is passed explicitly to every component.
"""

import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from neko_deploy.chunking import (
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MIN_CHUNK_SIZE,
    DEFAULT_MIN_CHUNKS,
    SizePolicy,
)
from neko_deploy.errors import ConfigError

_DEFAULTS = {
    "NEKOWEB_API_URL": "https://nekoweb.org/api",
    "NEKOWEB_CSRF_URL": "https://nekoweb.org/csrf",
    "MAX_CHUNK_SIZE": DEFAULT_MAX_CHUNK_SIZE,
    "MIN_CHUNK_SIZE": DEFAULT_MIN_CHUNK_SIZE,
    "MIN_CHUNKS": DEFAULT_MIN_CHUNKS,
    "CONNECT_TIMEOUT": 30,
    "READ_TIMEOUT": 120,
    "CLEAR_DESTINATION": "true",
    "ENTRY_DOCUMENT": "/index.html",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    api_url: str
    csrf_url: str
    folder: str
    directory: Path
    api_key: Optional[str]
    cookie: Optional[str]
    site: Optional[str]
    size_policy: SizePolicy
    connect_timeout: float
    read_timeout: float
    clear_destination: bool
    entry_document: str
    work_dir: Path
    log_path: Optional[str] = None

    @property
    def timeout(self) -> tuple:
        return (self.connect_timeout, self.read_timeout)

    @property
    def auth_mode(self) -> str:
        return "api_key" if self.api_key else "cookie"

    @property
    def cache_bust_enabled(self) -> bool:
        return bool(self.cookie)

    def with_overrides(self, **changes) -> "Config":
        """Return a copy with CLI overrides applied. None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self
        if "directory" in changes:
            changes["directory"] = Path(changes["directory"]).expanduser().resolve()
        if "folder" in changes:
            changes["folder"] = _normalize_folder(changes["folder"])
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a validated Config.

        With no mapping given, ``.env`` is loaded first and ``os.environ`` is
        read. Tests pass a plain dict instead.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def get(name: str) -> Optional[str]:
            value = environ.get(name)
            if value is None:
                return None
            value = value.strip()
            return value or None

        api_key = get("NEKOWEB_API_KEY")
        cookie = get("NEKOWEB_COOKIE")
        if not api_key and not cookie:
            raise ConfigError(
                "Neither NEKOWEB_API_KEY nor NEKOWEB_COOKIE is set. "
                "Copy .env.template to .env and fill in your credentials."
            )
        site = get("NEKOWEB_SITE")
        if cookie and not site:
            raise ConfigError(
                "NEKOWEB_COOKIE is set but NEKOWEB_SITE is not. "
                "Cookie writes must name the site they apply to."
            )

        folder = get("NEKOWEB_FOLDER")
        if not folder:
            raise ConfigError("NEKOWEB_FOLDER not set (destination folder on the site).")

        directory = get("DIRECTORY")
        if not directory:
            raise ConfigError("DIRECTORY not set (local folder to deploy).")

        policy = SizePolicy(
            max_chunk_size=_int_setting(get, "MAX_CHUNK_SIZE"),
            min_chunk_size=_int_setting(get, "MIN_CHUNK_SIZE"),
            min_chunks=_int_setting(get, "MIN_CHUNKS"),
        )

        work_dir = get("WORK_DIR")

        return cls(
            api_url=_url_setting(get, "NEKOWEB_API_URL"),
            csrf_url=_url_setting(get, "NEKOWEB_CSRF_URL"),
            folder=_normalize_folder(folder),
            directory=Path(directory).expanduser().resolve(),
            api_key=api_key,
            cookie=cookie,
            site=site,
            size_policy=policy,
            connect_timeout=_float_setting(get, "CONNECT_TIMEOUT"),
            read_timeout=_float_setting(get, "READ_TIMEOUT"),
            clear_destination=_bool_setting(get, "CLEAR_DESTINATION"),
            entry_document=get("ENTRY_DOCUMENT") or _DEFAULTS["ENTRY_DOCUMENT"],
            work_dir=Path(work_dir) if work_dir else Path(tempfile.gettempdir()),
            log_path=get("LOG_PATH"),
        )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _normalize_folder(folder: str) -> str:
    folder = folder.strip().replace("\\", "/")
    if not folder.startswith("/"):
        folder = "/" + folder
    if len(folder) > 1:
        folder = folder.rstrip("/")
    return folder


def _int_setting(get, name: str) -> int:
    raw = get(name)
    if raw is None:
        return int(_DEFAULTS[name])
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer number of bytes, got {raw!r}.")


def _float_setting(get, name: str) -> float:
    raw = get(name)
    if raw is None:
        return float(_DEFAULTS[name])
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}.")
    if value <= 0:
        raise ConfigError(f"{name} must be greater than zero, got {raw!r}.")
    return value


def _bool_setting(get, name: str) -> bool:
    raw = (get(name) or str(_DEFAULTS[name])).lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ConfigError(f"{name} must be true or false, got {raw!r}.")


def _url_setting(get, name: str) -> str:
    url = get(name) or _DEFAULTS[name]
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"{name} is not a valid http(s) URL: {url!r}.")
    return url.rstrip("/")
