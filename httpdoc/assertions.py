"""httpdoc assertions - response checks for executed requests.

The assert_* helpers raise HttpAssertionError with a body preview so a
failing check shows what the server actually said. evaluate_assert() is
the non-raising form behind the CLI's --assert flag.
"""

from __future__ import annotations

from http import HTTPStatus

from httpdoc.capture import evaluate_json_path, evaluate_xpath
from httpdoc.executor import RequestResult

DEFAULT_MAX_BODY_PREVIEW_LENGTH = 500

# (pattern, description), matched case-insensitively against the raw body
ERROR_PATTERNS = [
    ('"error":', "JSON error field detected"),
    ('"errors":', "JSON errors array detected"),
    ('"success":false', "Success flag is false"),
    ('"success": false', "Success flag is false"),
    ('"status":"error"', "Status field indicates error"),
    ('"status": "error"', "Status field indicates error"),
    ("<error>", "XML error element detected"),
    ("<Error>", "XML Error element detected"),
    ('"fault":', "JSON fault field detected"),
    ('"Fault":', "JSON Fault field detected"),
]


class HttpAssertionError(AssertionError):
    """A response did not meet an expectation."""


def truncate(value: str | None, max_length: int = DEFAULT_MAX_BODY_PREVIEW_LENGTH) -> str:
    if not value:
        return "(empty)"
    if len(value) <= max_length:
        return value
    return value[:max_length] + "..."


def _status_text(status_code: int) -> str:
    try:
        return f"{status_code} {HTTPStatus(status_code).phrase}"
    except ValueError:
        return str(status_code)


def _header_value(result: RequestResult, name: str) -> str | None:
    lower = name.lower()
    for key, value in (result.headers or {}).items():
        if key.lower() == lower:
            return value
    return None


# ── Raising checks ───────────────────────────────────────────────────────


def assert_status_code(
    result: RequestResult,
    expected: int,
    max_body_preview_length: int = DEFAULT_MAX_BODY_PREVIEW_LENGTH,
) -> None:
    if result.status_code != expected:
        raise HttpAssertionError(
            f"Expected status code {expected} but got {_status_text(result.status_code)}. "
            f"Body preview: {truncate(result.raw_text, max_body_preview_length)}"
        )


def assert_header(result: RequestResult, name: str, expected: str | None = None) -> None:
    """Header must be present; with *expected*, its value must match (ignoring case)."""
    actual = _header_value(result, name)
    if actual is None:
        raise HttpAssertionError(f"Expected header '{name}' but it was not present in the response.")
    if expected is not None and actual.lower() != expected.lower():
        raise HttpAssertionError(f"Expected header '{name}' to have value '{expected}' but got '{actual}'.")


def assert_content_type(result: RequestResult, expected: str) -> None:
    actual = result.content_type
    if actual is None:
        raise HttpAssertionError(f"Expected Content-Type '{expected}' but no Content-Type header was present.")
    if actual.lower() != expected.lower():
        raise HttpAssertionError(f"Expected Content-Type '{expected}' but got '{actual}'.")


def assert_body_contains(
    result: RequestResult,
    expected_text: str,
    max_body_preview_length: int = DEFAULT_MAX_BODY_PREVIEW_LENGTH,
) -> None:
    body = result.raw_text or ""
    if expected_text not in body:
        raise HttpAssertionError(
            f"Expected response body to contain '{expected_text}' but it was not found. "
            f"Body preview: {truncate(body, max_body_preview_length)}"
        )


def assert_no_errors_in_body(
    result: RequestResult,
    max_body_preview_length: int = DEFAULT_MAX_BODY_PREVIEW_LENGTH,
) -> None:
    """Fail when the body looks like an error payload despite the status code.

    A *max_body_preview_length* of 0 leaves the preview out of the message.
    """
    body = result.raw_text or ""
    if not body.strip():
        return
    lower = body.lower()
    for pattern, description in ERROR_PATTERNS:
        if pattern.lower() in lower:
            message = f"{description} in {_status_text(result.status_code)} response."
            if max_body_preview_length > 0:
                message += f" Body preview: {truncate(body, max_body_preview_length)}"
            raise HttpAssertionError(message)


def assert_valid_response(
    result: RequestResult,
    check_status_code: bool = True,
    check_content_type: bool = True,
    check_body_for_errors: bool = True,
    max_body_preview_length: int = DEFAULT_MAX_BODY_PREVIEW_LENGTH,
) -> None:
    """Run the standard checks: 2xx status, Content-Type present, no error payload."""
    success = 200 <= result.status_code < 300

    if check_status_code and not success:
        raise HttpAssertionError(
            f"Expected success status code but got {_status_text(result.status_code)}. "
            f"Body preview: {truncate(result.raw_text, max_body_preview_length)}"
        )

    if check_content_type and result.raw_text and result.content_type is None:
        raise HttpAssertionError("Response has content but no Content-Type header was specified.")

    if check_body_for_errors and success:
        assert_no_errors_in_body(result, max_body_preview_length)


# ── --assert expressions ─────────────────────────────────────────────────


def parse_assert(expr: str) -> tuple[str, str, str]:
    """Parse an assertion expression like 'status=200' or 'body.$.id!=0'.

    Returns (path, operator, expected_str).
    Checks for != first (2-char), then = (1-char).
    """
    idx = expr.find("!=")
    if idx != -1:
        return (expr[:idx].strip(), "!=", expr[idx + 2 :].strip())
    idx = expr.find("=")
    if idx != -1:
        return (expr[:idx].strip(), "=", expr[idx + 1 :].strip())
    raise ValueError(f"Invalid assert expression (no = or !=): {expr}")


def resolve_assert_path(path: str, result: RequestResult) -> str:
    """Read the value an assertion path points at, as a string.

    Paths:
      status           status code
      body             raw response text
      body.<path>      JSONPath-lite, e.g. body.$.items[0].id or body.token
      body./<path>     XPath-lite, e.g. body./user/name
      headers.<Name>   response header, case-insensitive
    """
    if path == "status":
        return str(result.status_code)
    if path == "body":
        return result.raw_text or ""
    if path.startswith("body."):
        sub_path = path[len("body.") :]
        if sub_path.startswith("/"):
            return evaluate_xpath(result.raw_text, sub_path)
        return evaluate_json_path(result.raw_text, sub_path)
    if path.startswith("headers."):
        return _header_value(result, path[len("headers.") :]) or ""
    return evaluate_json_path(result.raw_text, path)


def evaluate_assert(expr: str, result: RequestResult) -> tuple[bool, str]:
    """Evaluate an assertion against a request result.

    Returns (passed, message).
    On failure, message is 'ASSERT FAILED: expr (actual: val)'.
    On success, message is 'ASSERT PASSED: expr'.
    """
    path, op, expected = parse_assert(expr)
    actual = resolve_assert_path(path, result)

    passed = actual == expected if op == "=" else actual != expected
    if passed:
        return (True, f"ASSERT PASSED: {expr}")
    return (False, f"ASSERT FAILED: {expr} (actual: {actual})")
