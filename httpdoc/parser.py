"""httpdoc parser - turns .http file text into a ParsedFile.

The parser is a line-oriented state machine with three states:

    START       looking for variables, comments, @name directives
                and the request line
    IN_HEADERS  ``Name: value`` lines until the first blank line
    IN_BODY     everything up to the next ``###`` or end of input

Malformed input never raises. Each problem is recorded as a Diagnostic on
the ParsedFile and the offending line is dropped.
"""

from __future__ import annotations

import enum
import logging
import re
from pathlib import Path

from httpdoc.models import STANDARD_METHODS, Diagnostic, ParsedFile, ParsedRequest, Severity
from httpdoc.variables import RESPONSE_REFERENCE_RE

logger = logging.getLogger(__name__)

# Diagnostic ids
MALFORMED_REQUEST_LINE = "DOTHTTP001"
INVALID_HEADER = "DOTHTTP002"
INVALID_VARIABLE = "DOTHTTP003"
CONTENT_AFTER_FILE_REFERENCE = "DOTHTTP004"
UNKNOWN_METHOD = "DOTHTTP005"

SEPARATOR = "###"

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")
_REQUEST_LINE_RE = re.compile(r"^([A-Z]+)\s+(\S+)(?:\s+(HTTP/[\d.]+))?$", re.IGNORECASE)
_REQUEST_NAME_RE = re.compile(r"^(?:#|//)\s*@name\s+([A-Za-z0-9_-]+)", re.IGNORECASE)


class ParserState(enum.Enum):
    START = "start"
    IN_HEADERS = "in_headers"
    IN_BODY = "in_body"


def split_lines(content: str | None) -> list[str]:
    """Split text on any mix of ``\\r\\n``, ``\\r`` and ``\\n``.

    Empty lines are kept, including the empty line after a final break.
    """
    if not content:
        return []
    return _LINE_BREAK_RE.split(content)


def check_for_response_references(request: ParsedRequest, text: str | None) -> None:
    """Record every request name referenced as ``{{name.response...}}`` or
    ``{{name.request...}}`` in *text* as a dependency of *request*.
    """
    if not text:
        return
    for m in RESPONSE_REFERENCE_RE.finditer(text):
        request.add_dependency(m.group(1))


def parse(content: str | None, file_path: str) -> ParsedFile:
    """Parse .http file content into a ParsedFile.

    *file_path* is only used as a label. Passing None raises TypeError;
    everything else about the input is reported through diagnostics.
    """
    if file_path is None:
        raise TypeError("file_path must not be None")
    return HttpFileParser(file_path).parse(content)


def parse_file(path: str | Path) -> ParsedFile:
    """Read an .http file from disk (UTF-8) and parse it."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        content = f.read()
    return parse(content, str(path))


class HttpFileParser:
    """State machine over the lines of one file.

    A parser instance holds the cursor state for a single parse and should
    not be reused.
    """

    def __init__(self, file_path: str):
        self.file = ParsedFile(file_path=file_path)
        self.state = ParserState.START
        self.line_index = 0
        self.current_request: ParsedRequest | None = None
        self.pending_name: str | None = None
        self.pending_title: str | None = None
        self.pending_comments: list[str] = []
        self.pending_variables: dict[str, str] = {}
        self.body_lines: list[tuple[int, str]] = []
        self.seen_request = False

    def parse(self, content: str | None) -> ParsedFile:
        if not content or not content.strip():
            return self.file

        for index, line in enumerate(split_lines(content)):
            self.line_index = index
            self.process_line(line)
        self.finish_request()

        logger.debug(
            "Parsed %s: %d request(s), %d diagnostic(s)",
            self.file.file_path,
            len(self.file.requests),
            len(self.file.diagnostics),
        )
        return self.file

    def process_line(self, line: str) -> None:
        stripped = line.strip()

        if stripped.startswith(SEPARATOR):
            self.finish_request()
            self.start_block(stripped[len(SEPARATOR) :].strip() or None)
            return

        if self.state is ParserState.START:
            self.process_start(line, stripped)
        elif self.state is ParserState.IN_HEADERS:
            self.process_header(line, stripped)
        else:
            self.body_lines.append((self.line_index, line))

    # ── State transitions ────────────────────────────────────────────────

    def start_block(self, title: str | None) -> None:
        self.pending_title = title
        self.pending_name = None
        self.pending_comments = []
        self.pending_variables = {}
        self.state = ParserState.START

    def finish_request(self) -> None:
        """Attach the buffered body to the current request and store it."""
        request = self.current_request
        if request is None:
            return
        self.apply_body(request, self.body_lines)
        self.file.requests.append(request)
        self.current_request = None
        self.body_lines = []

    # ── START ────────────────────────────────────────────────────────────

    def process_start(self, line: str, stripped: str) -> None:
        if not stripped:
            return

        if stripped.startswith("@"):
            self.process_variable(line, stripped)
            return

        if stripped.startswith("#") or stripped.startswith("//"):
            m = _REQUEST_NAME_RE.match(stripped)
            if m:
                self.pending_name = m.group(1)
                return
            marker = 1 if stripped.startswith("#") else 2
            self.pending_comments.append(stripped[marker:].lstrip())
            return

        m = _REQUEST_LINE_RE.match(stripped)
        if m:
            self.start_request(line, m)
            return

        # Only a standard method word counts as an attempted request line;
        # other stray text before the first request is ignored.
        first_word = stripped.split(None, 1)[0]
        if stripped[0].isalpha() and first_word.upper() in STANDARD_METHODS:
            self.add_diagnostic(
                MALFORMED_REQUEST_LINE,
                Severity.ERROR,
                f"Malformed request line: '{stripped}'",
                line,
            )

    def process_variable(self, line: str, stripped: str) -> None:
        eq = stripped.find("=")
        if eq == -1:
            self.add_diagnostic(
                INVALID_VARIABLE,
                Severity.ERROR,
                f"Invalid variable definition: '{stripped}'. Expected '@name = value'",
                line,
            )
            return

        name = stripped[1:eq].strip()
        value = stripped[eq + 1 :].strip()

        if not name:
            self.add_diagnostic(
                INVALID_VARIABLE,
                Severity.ERROR,
                "Invalid variable: empty variable name",
                line,
            )
            return
        if any(c.isspace() for c in name):
            self.add_diagnostic(
                INVALID_VARIABLE,
                Severity.ERROR,
                f"Invalid variable name '{name}': whitespace is not allowed",
                line,
            )
            return

        if self.seen_request:
            self.pending_variables[name] = value
        else:
            self.file.variables[name] = value

    def start_request(self, line: str, m: re.Match) -> None:
        method = m.group(1).upper()
        if method not in STANDARD_METHODS:
            self.add_diagnostic(
                UNKNOWN_METHOD,
                Severity.WARNING,
                f"Unknown HTTP method: '{method}'",
                line,
            )

        request = ParsedRequest(
            method=method,
            url=m.group(2),
            http_version=m.group(3),
            name=self.pending_name,
            separator_title=self.pending_title,
            comments=list(self.pending_comments),
            line_number=self.line_index + 1,
        )
        request.variables.update(self.pending_variables)
        check_for_response_references(request, request.url)

        self.current_request = request
        self.seen_request = True
        self.pending_name = None
        self.pending_title = None
        self.pending_comments = []
        self.pending_variables = {}
        self.state = ParserState.IN_HEADERS

    # ── IN_HEADERS ───────────────────────────────────────────────────────

    def process_header(self, line: str, stripped: str) -> None:
        request = self.current_request
        if not stripped:
            self.state = ParserState.IN_BODY
            return

        if line[0].isspace() and request.headers:
            last_name = list(request.headers.keys())[-1]
            value = f"{request.headers[last_name]} {stripped}"
            request.headers[last_name] = value
            check_for_response_references(request, value)
            return

        colon = line.find(":")
        if colon == -1:
            self.add_diagnostic(
                INVALID_HEADER,
                Severity.ERROR,
                f"Invalid header format: '{stripped}'. Expected 'Name: Value'",
                line,
            )
            return

        name = line[:colon].strip()
        if not name:
            self.add_diagnostic(
                INVALID_HEADER,
                Severity.ERROR,
                "Invalid header: empty header name",
                line,
            )
            return

        value = line[colon + 1 :].strip()
        request.headers[name] = value
        check_for_response_references(request, value)

    # ── IN_BODY ──────────────────────────────────────────────────────────

    def apply_body(self, request: ParsedRequest, body_lines: list[tuple[int, str]]) -> None:
        lines = list(body_lines)
        while lines and not lines[-1][1].strip():
            lines.pop()
        if not lines:
            return

        first = lines[0][1].strip()
        if first.startswith("<") and first[1:].strip():
            request.body_file_path = first[1:].strip()
            check_for_response_references(request, request.body_file_path)
            if len(lines) > 1:
                extra_index, extra_line = next((i, t) for i, t in lines[1:] if t.strip())
                self.add_diagnostic(
                    CONTENT_AFTER_FILE_REFERENCE,
                    Severity.WARNING,
                    "Content after file reference will be ignored",
                    extra_line,
                    line_index=extra_index,
                )
            return

        request.body = "\n".join(text for _, text in lines)
        check_for_response_references(request, request.body)

    # ── Diagnostics ──────────────────────────────────────────────────────

    def add_diagnostic(
        self,
        diagnostic_id: str,
        severity: Severity,
        message: str,
        line: str,
        line_index: int | None = None,
    ) -> None:
        column = len(line) - len(line.lstrip())
        self.file.diagnostics.append(
            Diagnostic(
                id=diagnostic_id,
                severity=severity,
                message=message,
                line=self.line_index if line_index is None else line_index,
                column=column,
            ),
        )
