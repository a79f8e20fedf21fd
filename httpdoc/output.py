"""httpdoc output - text rendering for results, diagnostics and request lists."""

from __future__ import annotations

import json

from httpdoc.executor import RequestResult
from httpdoc.models import Diagnostic, ParsedFile


def format_output(result: RequestResult, verbose: bool = False, raw: bool = False) -> str:
    """Format the request result for CLI output.

    Default output:
        STATUS: 200
        TIME: 45ms
        BODY:
        {...}

    *verbose* adds a HEADERS section; *raw* prints the body alone.
    """
    if result.error:
        return f"ERROR: {result.error}"

    if raw:
        body = result.body
        if isinstance(body, dict | list):
            return json.dumps(body, indent=2)
        return str(body) if body is not None else ""

    lines: list[str] = [
        f"STATUS: {result.status_code}",
        f"TIME: {int(result.elapsed_ms)}ms",
    ]

    if verbose and result.headers:
        lines.append("HEADERS:")
        for key, value in result.headers.items():
            lines.append(f"  {key}: {value}")

    body = result.body
    if body is not None and body != "":
        lines.append("BODY:")
        if isinstance(body, dict | list):
            lines.append(json.dumps(body, indent=2))
        else:
            lines.append(str(body))

    return "\n".join(lines)


def format_diagnostic(file_path: str, diagnostic: Diagnostic) -> str:
    """``path:line:col: severity ID: message`` with 1-based line and column."""
    return (
        f"{file_path}:{diagnostic.line + 1}:{diagnostic.column + 1}: "
        f"{diagnostic.severity.value} {diagnostic.id}: {diagnostic.message}"
    )


def format_request_list(parsed_file: ParsedFile) -> str:
    """One line per request: index, method, URL, then name and dependencies."""
    if not parsed_file.requests:
        return "No requests found."

    lines = []
    for i, request in enumerate(parsed_file.requests, 1):
        line = f"  {i:>3}  {request.method:<7} {request.url}"
        if request.name:
            line += f"  @{request.name}"
        if request.depends_on:
            line += f"  (depends: {', '.join(request.depends_on)})"
        lines.append(line)
    return "\n".join(lines)
