"""httpdoc runner - executes the requests of a parsed .http file in order.

Each request is resolved just before it is sent: response references
first, then dynamic functions and variables. Named requests are captured
after a successful exchange so later requests can reference them.

Variable precedence, lowest to highest:
  1. environment variables (environment file)
  2. file variables (``@name = value`` before the first request)
  3. request variables (``@name = value`` inside a later block)
  4. overrides (CLI -v)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import requests

from httpdoc import executor
from httpdoc.capture import ResponseCapture
from httpdoc.errors import BodyFileNotFoundError, CircularDependencyError
from httpdoc.executor import RequestResult
from httpdoc.models import ParsedFile, ParsedRequest
from httpdoc.variables import VariableResolver

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"


@dataclass
class PreparedRequest:
    """A request with every placeholder resolved, ready to send."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None


@dataclass
class RunOutcome:
    request: ParsedRequest
    prepared: PreparedRequest
    result: RequestResult


class HttpFileRunner:
    """Drives one ParsedFile against a live server."""

    def __init__(
        self,
        parsed_file: ParsedFile,
        variables: Mapping[str, str] | None = None,
        overrides: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
        timeout: int = 30,
        base_dir: str | Path | None = None,
        session: requests.Session | None = None,
    ):
        self.file = parsed_file
        self.resolver = VariableResolver(environ)
        self.capture = ResponseCapture()
        self.timeout = timeout
        self.base_dir = Path(base_dir) if base_dir else Path(parsed_file.file_path).parent
        self.session = session
        self.overrides = dict(overrides or {})

        self.resolver.set_variables(variables)
        for name, value in parsed_file.variables.items():
            self.resolver.set_variable(name, self.resolver.resolve(value))
        self.resolver.set_variables(self.overrides)

    # ── Resolution ───────────────────────────────────────────────────────

    def resolve_text(self, text: str | None) -> str | None:
        """Resolve references, then variables.

        References are resolved again afterwards because a variable's value
        may itself be a response reference.
        """
        if not text:
            return text
        text = self.capture.resolve_all_references(text)
        text = self.resolver.resolve(text)
        return self.capture.resolve_all_references(text)

    @contextlib.contextmanager
    def request_scope(self, request: ParsedRequest) -> Iterator[None]:
        """Apply a request's own variables for the duration of the block."""
        saved = self.resolver.variables
        try:
            for name, value in request.variables.items():
                self.resolver.set_variable(name, self.resolve_text(value))
            self.resolver.set_variables(self.overrides)
            yield
        finally:
            self.resolver.clear()
            self.resolver.set_variables(saved)

    def prepare(self, request: ParsedRequest) -> PreparedRequest:
        with self.request_scope(request):
            headers = {name: self.resolve_text(value) for name, value in request.headers.items()}
            if request.is_file_body:
                body = self.read_body_file(self.resolve_text(request.body_file_path))
            else:
                body = self.resolve_text(request.body)
            if body and not any(k.lower() == "content-type" for k in headers):
                headers["Content-Type"] = DEFAULT_CONTENT_TYPE
            return PreparedRequest(
                method=request.method,
                url=self.resolve_text(request.url),
                headers=headers,
                body=body,
            )

    def read_body_file(self, path: str) -> str:
        body_path = Path(path)
        if not body_path.is_absolute():
            body_path = self.base_dir / body_path
        if not body_path.is_file():
            raise BodyFileNotFoundError(body_path)
        with open(body_path, encoding="utf-8") as f:
            return f.read()

    # ── Dependencies ─────────────────────────────────────────────────────

    def dependencies_of(self, request: ParsedRequest) -> list[str]:
        """Request names this request reads from, directly or via a variable."""
        names = list(request.depends_on)
        texts = [request.url, request.body, request.body_file_path, *request.headers.values()]
        scope = {**self.file.variables, **dict(request.variables)}
        for text in texts:
            for var_name in sorted(self.resolver.get_variable_names(text)):
                value = scope.get(var_name)
                for ref in sorted(self.resolver.get_response_reference_names(value)):
                    if ref not in names:
                        names.append(ref)
        return names

    def plan(self, names: list[str] | None = None) -> list[ParsedRequest]:
        """Order the requests to run.

        Without *names*, every request in file order. With *names*, only
        those requests, each preceded depth-first by the requests it
        depends on. Every request appears at most once.
        """
        if not names:
            return list(self.file.requests)

        ordered: list[ParsedRequest] = []

        def visit(request: ParsedRequest, chain: list[str]) -> None:
            label = request.name or request.display_name
            if label in chain:
                raise CircularDependencyError(chain + [label])
            if any(r is request for r in ordered):
                return
            for dep_name in self.dependencies_of(request):
                dep = self.file.get_request(dep_name)
                if dep is None:
                    logger.warning("Request '%s' depends on unknown request '%s'", label, dep_name)
                    continue
                visit(dep, chain + [label])
            ordered.append(request)

        for name in names:
            request = self.file.get_request(name)
            if request is None:
                logger.warning("No request named '%s' in %s", name, self.file.file_path)
                continue
            visit(request, [])
        return ordered

    # ── Execution ────────────────────────────────────────────────────────

    async def send(self, request: ParsedRequest) -> RunOutcome:
        prepared = self.prepare(request)
        logger.info("%s %s", prepared.method, prepared.url)

        result = await asyncio.to_thread(
            executor.execute_request,
            prepared.method,
            prepared.url,
            headers=prepared.headers,
            body=prepared.body,
            timeout=self.timeout,
            session=self.session,
        )

        if result.error:
            logger.error("%s failed: %s", request.display_name, result.error)
        elif request.name:
            await self.capture.capture(request.name, result, request_body=prepared.body)
        return RunOutcome(request=request, prepared=prepared, result=result)

    async def iter_run(self, names: list[str] | None = None) -> AsyncIterator[RunOutcome]:
        """Send the planned requests one after another, yielding each outcome.

        Captured responses are cleared at the start of every run. The next
        request is only sent once the consumer asks for it, so breaking out
        of the loop stops the run.
        """
        self.capture.clear()
        for request in self.plan(names):
            yield await self.send(request)

    async def run(self, names: list[str] | None = None) -> list[RunOutcome]:
        return [outcome async for outcome in self.iter_run(names)]


def run_file(parsed_file: ParsedFile, names: list[str] | None = None, **kwargs) -> list[RunOutcome]:
    """Synchronous wrapper around HttpFileRunner.run()."""
    runner = HttpFileRunner(parsed_file, **kwargs)
    return asyncio.run(runner.run(names))
