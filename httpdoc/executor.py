"""httpdoc executor - sends one resolved request over HTTP.

The transport is ``requests``; this module only adapts its response into
a plain RequestResult snapshot that the capture store and the assertion
helpers can read.
"""

import json
import time
from typing import Any

import requests


class RequestResult:
    """Status, headers and body of one HTTP exchange."""

    def __init__(self):
        self.status_code: int = 0
        self.headers: dict[str, str] = {}
        self.body: Any = None  # parsed JSON or raw text
        self.raw_text: str = ""
        self.elapsed_ms: float = 0
        self.error: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    @property
    def content_type(self) -> str | None:
        """Media type of the response without parameters, e.g. ``application/json``."""
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.split(";", 1)[0].strip() or None
        return None


def execute_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: str | bytes | None = None,
    timeout: int = 30,
    session: requests.Session | None = None,
) -> RequestResult:
    """Send a request and return a RequestResult. Never raises.

    Pass a shared *session* to keep cookies between the requests of one
    file run.
    """
    result = RequestResult()
    data = body.encode("utf-8") if isinstance(body, str) else body
    send = session.request if session is not None else requests.request

    try:
        start = time.monotonic()
        resp = send(
            method=method,
            url=url,
            headers=headers or None,
            data=data or None,
            timeout=timeout,
            allow_redirects=True,
        )
        result.elapsed_ms = (time.monotonic() - start) * 1000

        result.status_code = resp.status_code
        result.headers = dict(resp.headers)
        result.raw_text = resp.text
        try:
            result.body = resp.json()
        except (json.JSONDecodeError, ValueError):
            result.body = resp.text

    except requests.exceptions.Timeout:
        result.error = f"Request timed out after {timeout}s"
    except requests.exceptions.ConnectionError as e:
        result.error = f"Connection error: {e}"
    except requests.exceptions.RequestException as e:
        result.error = f"Request failed: {e}"
    except Exception as e:
        result.error = f"Unexpected error: {e}"

    return result
