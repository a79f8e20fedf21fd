"""Shared fixtures for httpdoc tests."""

import json
import os

import pytest
from click.testing import CliRunner

from httpdoc import core
from httpdoc.executor import RequestResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tmp_project(tmp_path):
    """Create a temporary project directory and cd into it."""
    original = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(original)


@pytest.fixture
def global_httpdoc_dir(tmp_path, monkeypatch):
    """Override the global ~/.httpdoc directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".httpdoc"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    return fake_global


def make_request_result(
    status_code=200,
    body=None,
    headers=None,
    elapsed_ms=42.0,
    error=None,
    raw_text="",
):
    """Factory for mock RequestResult objects."""
    r = RequestResult()
    r.status_code = status_code
    r.headers = headers or {}
    r.body = body
    r.elapsed_ms = elapsed_ms
    r.error = error
    r.raw_text = raw_text or (
        json.dumps(body) if isinstance(body, dict | list) else str(body or "")
    )
    return r


def write_http_file(directory, content, name="api.http"):
    """Write an .http file into *directory* and return its path."""
    path = directory / name
    path.write_text(content, encoding="utf-8")
    return path
