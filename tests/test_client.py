"""Tests for the Nekoweb HTTP client."""

from unittest.mock import MagicMock

import pytest
import requests

from neko_deploy.auth import ApiKeyCredential, CookieCredential
from neko_deploy.client import NekowebClient
from neko_deploy.errors import (
    ChunkAppendError,
    FinalizeError,
    LimitsQueryError,
    SessionCreateError,
    TransportError,
)

LIMITS = {
    "general": {"limit": 100, "remaining": 42, "reset": 1_700_000_000_000},
    "big_uploads": {"limit": 5, "remaining": 0, "reset": 1_700_000_100_000},
    "zip": {"limit": 10, "remaining": 9, "reset": 1_700_000_200_000},
}


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(make_config, session):
    cfg = make_config()
    return NekowebClient(cfg, ApiKeyCredential("test-key"), session=session)


def test_get_limits(client, session, make_response):
    session.request.return_value = make_response(json_body=LIMITS)

    limits = client.get_limits()

    assert limits["general"].remaining == 42
    assert limits["big_uploads"].exhausted
    assert limits["zip"].reset_at == 1_700_000_200_000
    session.request.assert_called_once_with(
        "GET",
        "https://nekoweb.test/api/files/limits",
        headers={"Authorization": "test-key"},
        timeout=(5.0, 10.0),
    )


def test_get_limit_unknown_category(client, session, make_response):
    session.request.return_value = make_response(json_body=LIMITS)
    with pytest.raises(LimitsQueryError, match="'uploads'"):
        client.get_limit("uploads")


def test_limits_http_error(client, session, make_response):
    session.request.return_value = make_response(401, json_body={"error": "bad key"})
    with pytest.raises(LimitsQueryError) as exc_info:
        client.get_limits()
    assert exc_info.value.status_code == 401
    assert "bad key" in str(exc_info.value)


def test_limits_transport_error(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(TransportError, match="refused"):
        client.get_limits()


def test_create_session(client, session, make_response):
    session.request.return_value = make_response(json_body={"id": "abc-123"})

    upload = client.create_session()

    assert upload.id == "abc-123"
    assert upload.created_at is not None
    args, kwargs = session.request.call_args
    assert args == ("GET", "https://nekoweb.test/api/files/big/create")


@pytest.mark.parametrize(
    "status, body",
    [(500, {"error": "down"}), (200, {"nope": 1}), (200, {"id": ""})],
)
def test_create_session_failures(client, session, make_response, status, body):
    session.request.return_value = make_response(status, json_body=body)
    with pytest.raises(SessionCreateError):
        client.create_session()


def test_append_chunk_sends_multipart(client, session, make_response):
    session.request.return_value = make_response(text="ok")

    client.append_chunk("abc-123", 3, b"\x00\x01\x02")

    args, kwargs = session.request.call_args
    assert args == ("POST", "https://nekoweb.test/api/files/big/append")
    assert kwargs["data"] == {"id": "abc-123"}
    assert kwargs["files"] == {
        "file": ("chunk_3.part", b"\x00\x01\x02", "application/octet-stream")
    }
    assert kwargs["headers"]["Authorization"] == "test-key"
    assert kwargs["timeout"] == (5.0, 10.0)


def test_append_chunk_http_error_carries_index(client, session, make_response):
    session.request.return_value = make_response(413, text="too large")
    with pytest.raises(ChunkAppendError) as exc_info:
        client.append_chunk("abc-123", 2, b"data")
    assert exc_info.value.index == 2
    assert exc_info.value.status_code == 413


def test_append_chunk_transport_error_is_chained(client, session):
    session.request.side_effect = requests.exceptions.Timeout("read timed out")
    with pytest.raises(ChunkAppendError) as exc_info:
        client.append_chunk("abc-123", 4, b"data")
    assert exc_info.value.index == 4
    assert isinstance(exc_info.value.__cause__, TransportError)


def test_finalize_session(client, session, make_response):
    session.request.return_value = make_response(text="ok")

    client.finalize_session("abc-123")

    args, kwargs = session.request.call_args
    assert args == ("POST", "https://nekoweb.test/api/files/import/abc-123")
    assert kwargs["data"] is None


def test_finalize_failure(client, session, make_response):
    session.request.return_value = make_response(400, json_body={"message": "no such upload"})
    with pytest.raises(FinalizeError, match="no such upload"):
        client.finalize_session("abc-123")


def test_delete_path_success(client, session, make_response):
    session.request.return_value = make_response(text="ok")

    outcome = client.delete_path("/public")

    assert outcome.ok
    args, kwargs = session.request.call_args
    assert args == ("POST", "https://nekoweb.test/api/files/delete")
    assert kwargs["data"] == {"pathname": "/public"}


def test_delete_path_failure_is_returned_not_raised(client, session, make_response):
    session.request.return_value = make_response(404, text="not found")

    outcome = client.delete_path("/public")

    assert not outcome.ok
    assert outcome.step == "remote_clear"
    assert outcome.error.status_code == 404


def test_delete_path_transport_failure_is_returned(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("reset")
    outcome = client.delete_path("/public")
    assert not outcome.ok
    assert isinstance(outcome.error, TransportError)


def test_touch_entry_without_cookie(client, session):
    outcome = client.touch_entry("/index.html", "<!-- 1 -->")
    assert not outcome.ok
    session.request.assert_not_called()


def test_touch_entry_with_cookie(make_config, session, make_response):
    cfg = make_config(cookie="cookie-token", site="mysite")
    cookie = CookieCredential("cookie-token", "mysite", cfg.csrf_url)
    client = NekowebClient(cfg, ApiKeyCredential("test-key"), cookie=cookie, session=session)
    session.get.return_value = make_response(text="csrf-xyz\n")
    session.request.return_value = make_response(text="ok")

    outcome = client.touch_entry("/index.html", "<!-- 1 -->")

    assert outcome.ok
    session.get.assert_called_once()
    assert session.get.call_args.args == ("https://nekoweb.test/csrf",)
    args, kwargs = session.request.call_args
    assert args == ("POST", "https://nekoweb.test/api/files/edit")
    assert kwargs["headers"]["Cookie"] == "token=cookie-token"
    assert "Authorization" not in kwargs["headers"]
    assert kwargs["files"] == {
        "csrf": (None, "csrf-xyz"),
        "site": (None, "mysite"),
        "pathname": (None, "/index.html"),
        "content": (None, "<!-- 1 -->"),
    }


def test_touch_entry_failure_is_returned(make_config, session, make_response):
    cfg = make_config(cookie="cookie-token", site="mysite")
    cookie = CookieCredential("cookie-token", "mysite", cfg.csrf_url)
    client = NekowebClient(cfg, ApiKeyCredential("test-key"), cookie=cookie, session=session)
    session.get.return_value = make_response(403, text="forbidden")

    outcome = client.touch_entry("/index.html", "<!-- 1 -->")

    assert not outcome.ok
    assert outcome.step == "cache_bust"


def test_cookie_mode_adds_csrf_to_writes(make_config, session, make_response):
    cfg = make_config(api_key=None, cookie="cookie-token", site="mysite")
    cookie = CookieCredential("cookie-token", "mysite", cfg.csrf_url)
    client = NekowebClient(cfg, cookie, cookie=cookie, session=session)
    session.get.return_value = make_response(text="csrf-xyz")
    session.request.return_value = make_response(text="ok")

    client.append_chunk("abc", 0, b"x")
    client.finalize_session("abc")

    # token is fetched once and reused
    session.get.assert_called_once()
    first, second = session.request.call_args_list
    assert first.kwargs["data"] == {"csrf": "csrf-xyz", "site": "mysite", "id": "abc"}
    assert second.kwargs["data"] == {"csrf": "csrf-xyz", "site": "mysite"}


def test_get_limits_ignores_non_limit_keys(client, session, make_response):
    body = dict(LIMITS, server_time=1_700_000_000_000, notice="maintenance soon")
    session.request.return_value = make_response(json_body=body)

    limits = client.get_limits()

    assert set(limits) == {"general", "big_uploads", "zip"}
    assert client.get_limit("big_uploads").limit == 5


def test_malformed_limit_chains_cause(client, session, make_response):
    session.request.return_value = make_response(json_body={"zip": {"limit": 10}})
    with pytest.raises(LimitsQueryError) as exc_info:
        client.get_limits()
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_missing_session_id_chains_cause(client, session, make_response):
    session.request.return_value = make_response(json_body={"nope": 1})
    with pytest.raises(SessionCreateError) as exc_info:
        client.create_session()
    assert isinstance(exc_info.value.__cause__, KeyError)
