"""Tests for environment-driven configuration."""

from pathlib import Path
from unittest.mock import patch

import pytest

from neko_deploy.chunking import SizePolicy
from neko_deploy.config import Config
from neko_deploy.errors import ConfigError


@pytest.fixture
def env(tmp_path):
    return {
        "NEKOWEB_API_KEY": "abc123",
        "NEKOWEB_FOLDER": "public",
        "DIRECTORY": str(tmp_path / "dist"),
    }


def test_defaults(env):
    cfg = Config.from_env(env)

    assert cfg.api_url == "https://nekoweb.org/api"
    assert cfg.folder == "/public"
    assert cfg.directory == (Path(env["DIRECTORY"])).resolve()
    assert cfg.size_policy == SizePolicy(100 * 1024 * 1024, 10 * 1024 * 1024, 5)
    assert cfg.timeout == (30.0, 120.0)
    assert cfg.clear_destination is True
    assert cfg.entry_document == "/index.html"
    assert cfg.auth_mode == "api_key"
    assert cfg.cache_bust_enabled is False


def test_size_policy_from_env(env):
    env.update({"MAX_CHUNK_SIZE": "2000", "MIN_CHUNK_SIZE": "100", "MIN_CHUNKS": "3"})
    cfg = Config.from_env(env)
    assert cfg.size_policy == SizePolicy(2000, 100, 3)


def test_config_is_frozen(env):
    cfg = Config.from_env(env)
    with pytest.raises(AttributeError):
        cfg.folder = "/other"


@pytest.mark.parametrize("missing", ["NEKOWEB_FOLDER", "DIRECTORY"])
def test_missing_required_setting(env, missing):
    del env[missing]
    with pytest.raises(ConfigError, match=missing):
        Config.from_env(env)


def test_missing_credentials(env):
    del env["NEKOWEB_API_KEY"]
    with pytest.raises(ConfigError, match="NEKOWEB_API_KEY"):
        Config.from_env(env)


def test_blank_value_counts_as_missing(env):
    env["NEKOWEB_API_KEY"] = "   "
    with pytest.raises(ConfigError):
        Config.from_env(env)


def test_cookie_mode_requires_site(env):
    del env["NEKOWEB_API_KEY"]
    env["NEKOWEB_COOKIE"] = "cookie-token"
    with pytest.raises(ConfigError, match="NEKOWEB_SITE"):
        Config.from_env(env)

    env["NEKOWEB_SITE"] = "mysite"
    cfg = Config.from_env(env)
    assert cfg.auth_mode == "cookie"
    assert cfg.cache_bust_enabled is True


@pytest.mark.parametrize(
    "name, value",
    [
        ("MAX_CHUNK_SIZE", "big"),
        ("MIN_CHUNKS", "0"),
        ("READ_TIMEOUT", "-1"),
        ("CLEAR_DESTINATION", "maybe"),
        ("NEKOWEB_API_URL", "ftp://nekoweb.org"),
    ],
)
def test_invalid_values(env, name, value):
    env[name] = value
    with pytest.raises(ConfigError, match=name if name != "MIN_CHUNKS" else "min_chunks"):
        Config.from_env(env)


def test_clear_destination_false(env):
    env["CLEAR_DESTINATION"] = "no"
    assert Config.from_env(env).clear_destination is False


def test_with_overrides(env, tmp_path):
    cfg = Config.from_env(env)
    updated = cfg.with_overrides(folder="site/", directory=str(tmp_path), clear_destination=None)

    assert updated.folder == "/site"
    assert updated.directory == tmp_path.resolve()
    assert updated.clear_destination is True
    assert cfg.folder == "/public"


def test_with_no_overrides_returns_same_value(env):
    cfg = Config.from_env(env)
    assert cfg.with_overrides(folder=None) is cfg


def test_loads_dotenv_when_no_mapping_given(env):
    with patch("neko_deploy.config.load_dotenv") as mock_load, patch.dict(
        "os.environ", env, clear=True
    ):
        cfg = Config.from_env()

    mock_load.assert_called_once_with()
    assert cfg.api_key == "abc123"
