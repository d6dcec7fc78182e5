"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path

import pytest
import requests

from neko_deploy.chunking import SizePolicy
from neko_deploy.config import Config


@pytest.fixture
def make_config(tmp_path):
    """Factory for a Config pointing at temporary directories."""

    def _make(**overrides):
        source = tmp_path / "site"
        work = tmp_path / "work"
        work.mkdir(exist_ok=True)
        values = dict(
            api_url="https://nekoweb.test/api",
            csrf_url="https://nekoweb.test/csrf",
            folder="/public",
            directory=source,
            api_key="test-key",
            cookie=None,
            site=None,
            size_policy=SizePolicy(),
            connect_timeout=5.0,
            read_timeout=10.0,
            clear_destination=True,
            entry_document="/index.html",
            work_dir=work,
            log_path=None,
        )
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def make_response():
    """Factory for real requests.Response objects with a canned body."""

    def _make(status=200, json_body=None, text=""):
        response = requests.Response()
        response.status_code = status
        if json_body is not None:
            response._content = json.dumps(json_body).encode("utf-8")
            response.headers["Content-Type"] = "application/json"
        else:
            response._content = text.encode("utf-8")
        response.encoding = "utf-8"
        return response

    return _make


@pytest.fixture
def site_dir(tmp_path) -> Path:
    """A small source directory with a nested file."""
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "index.html").write_text("<h1>hello</h1>" * 50, encoding="utf-8")
    (root / "css" / "main.css").write_text("body { color: red; }\n" * 20, encoding="utf-8")
    return root
