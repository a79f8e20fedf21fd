"""httpdoc models - parsed documents, requests and parse diagnostics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from requests.structures import CaseInsensitiveDict

STANDARD_METHODS = frozenset(
    {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE", "CONNECT"},
)


class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem found while parsing.

    ``line`` and ``column`` are 0-based.
    """

    id: str
    severity: Severity
    message: str
    line: int
    column: int = 0

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass
class ParsedRequest:
    """One request block of an .http file.

    ``headers`` and ``variables`` are case-insensitive and keep insertion
    order. ``depends_on`` lists each referenced request name once, in the
    order the references were found.
    """

    method: str
    url: str
    http_version: str | None = None
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: str | None = None
    body_file_path: str | None = None
    name: str | None = None
    separator_title: str | None = None
    comments: list[str] = field(default_factory=list)
    variables: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    depends_on: list[str] = field(default_factory=list)
    line_number: int = 0

    def __post_init__(self):
        if not self.method or not self.url:
            raise ValueError("A request needs both a method and a URL")
        if self.body is not None and self.body_file_path is not None:
            raise ValueError("A request cannot have both a body and a body file")

    @property
    def is_file_body(self) -> bool:
        return self.body_file_path is not None

    @property
    def has_response_references(self) -> bool:
        return bool(self.depends_on)

    @property
    def display_name(self) -> str:
        return self.name or self.separator_title or f"{self.method} {self.url}"

    def add_dependency(self, request_name: str) -> None:
        if request_name not in self.depends_on:
            self.depends_on.append(request_name)


@dataclass
class ParsedFile:
    """Result of parsing one .http file. Never None, even for bad input."""

    file_path: str
    variables: dict[str, str] = field(default_factory=dict)
    requests: list[ParsedRequest] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def has_chained_requests(self) -> bool:
        return any(r.has_response_references for r in self.requests)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    def get_request(self, name: str) -> ParsedRequest | None:
        """Find a named request. Names match case-insensitively."""
        lower = name.lower()
        for request in self.requests:
            if request.name and request.name.lower() == lower:
                return request
        return None
