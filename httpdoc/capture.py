"""httpdoc capture - named response snapshots and chained references.

A later request can read values out of an earlier, named request with:

    {{login.response.body.$.token}}        JSONPath-lite over the response body
    {{login.response.body./auth/token}}    XPath-lite over the response body
    {{login.response.body.*}}              the whole response body
    {{login.response.headers.Location}}    a response header
    {{login.request.body.$.username}}      the body that was sent

Anything that cannot be resolved is returned unchanged, and evaluator
failures (bad JSON/XML, missing paths) resolve to an empty string.
"""

from __future__ import annotations

import inspect
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

from requests.structures import CaseInsensitiveDict

from httpdoc.variables import RESPONSE_REFERENCE_RE

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")


@dataclass
class CapturedResponse:
    """What is remembered about one named request."""

    status_code: int = 0
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: str = ""
    request_body: str | None = None


class ResponseCapture:
    """Store of captured responses, keyed case-insensitively by request name."""

    def __init__(self):
        self._responses: CaseInsensitiveDict = CaseInsensitiveDict()

    @property
    def names(self) -> list[str]:
        return list(self._responses.keys())

    async def capture(self, name: str | None, response: Any, request_body: str | None = None) -> None:
        """Snapshot *response* under *name*, replacing any earlier capture.

        *response* needs ``status_code`` and ``headers``, plus the body as
        ``raw_text`` (RequestResult) or ``text`` (requests.Response). A
        callable or awaitable body reader is called and awaited.
        """
        if not name:
            return

        body = await _read_body(response)
        headers = CaseInsensitiveDict()
        for key, value in (getattr(response, "headers", None) or {}).items():
            if isinstance(value, list | tuple):
                value = value[0] if value else ""
            if key not in headers:
                headers[key] = value

        self._responses[name] = CapturedResponse(
            status_code=getattr(response, "status_code", 0) or 0,
            headers=headers,
            body=body,
            request_body=request_body,
        )
        logger.debug("Captured response '%s' (%d bytes)", name, len(body))

    def clear(self) -> None:
        self._responses.clear()

    def has_response(self, name: str) -> bool:
        return name in self._responses

    def get_response(self, name: str) -> CapturedResponse | None:
        return self._responses.get(name)

    def get_response_body(self, name: str) -> str | None:
        captured = self._responses.get(name)
        return captured.body if captured else None

    # ── Reference resolution ─────────────────────────────────────────────

    def resolve_reference(self, reference: str) -> str:
        """Resolve one ``{{name.(response|request).(body|headers).path}}``."""
        m = RESPONSE_REFERENCE_RE.fullmatch(reference) if reference else None
        if not m:
            return reference
        return self._resolve_match(m)

    def resolve_all_references(self, text: str | None) -> str | None:
        """Resolve every reference in *text* in a single left-to-right pass."""
        if not text:
            return text
        return RESPONSE_REFERENCE_RE.sub(self._resolve_match, text)

    def _resolve_match(self, m: re.Match) -> str:
        name, source, part, path = m.group(1), m.group(2), m.group(3), m.group(4)

        captured = self._responses.get(name)
        if captured is None:
            return m.group(0)

        if part == "headers":
            # Only response headers are captured
            if source == "request" or path not in captured.headers:
                return m.group(0)
            return captured.headers[path]

        body = captured.request_body if source == "request" else captured.body
        if path == "*":
            return body or ""
        if path.startswith("/"):
            return evaluate_xpath(body, path)
        return evaluate_json_path(body, path)


async def _read_body(response: Any) -> str:
    body = getattr(response, "raw_text", None)
    if body is None:
        body = getattr(response, "text", None)
    if callable(body):
        body = body()
    if inspect.isawaitable(body):
        body = await body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return body or ""


# ── JSONPath-lite ────────────────────────────────────────────────────────


def evaluate_json_path(json_text: str | None, path: str) -> str:
    """Evaluate a dotted path such as ``$.items[1].id`` against JSON text.

    The leading ``$`` is optional and empty segments are skipped, so
    ``$..a..b`` behaves like ``$.a.b``. Property lookup is case-sensitive.
    Returns "" for invalid JSON and for anything missing along the way.
    """
    if not json_text:
        return ""
    try:
        current = _load_json(json_text)
    except ValueError:
        return ""

    segments = path.split(".")
    if segments and segments[0].startswith("$"):
        segments[0] = segments[0][1:]

    for segment in segments:
        if not segment:
            continue
        m = _SEGMENT_RE.match(segment)
        prop, indexes = (m.group(1), m.group(2)) if m else (segment, "")

        if prop:
            if not isinstance(current, dict) or prop not in current:
                return ""
            current = current[prop]
        for index in _INDEX_RE.findall(indexes):
            if not isinstance(current, list) or int(index) >= len(current):
                return ""
            current = current[int(index)]
        if current is None:
            return ""

    return _json_value_text(current)


class _RawNumber(str):
    """A JSON number kept exactly as it was written in the source text."""


def _load_json(text: str) -> Any:
    return json.loads(text, parse_int=_RawNumber, parse_float=_RawNumber)


def _json_value_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return _compact_json(value)


def _compact_json(value: Any) -> str:
    if isinstance(value, _RawNumber):
        return str(value)
    if isinstance(value, dict):
        items = (f"{_compact_json(k)}:{_compact_json(v)}" for k, v in value.items())
        return "{" + ",".join(items) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_compact_json(v) for v in value) + "]"
    return json.dumps(value, ensure_ascii=False)


# ── XPath-lite ───────────────────────────────────────────────────────────


def evaluate_xpath(xml_text: str | None, path: str) -> str:
    """Evaluate a slash path such as ``/root/user/name`` or ``/root/item/@id``.

    Each step picks the first child element with that local name; an
    ``@attr`` step reads an attribute of the current element. Returns ""
    for invalid XML and for anything missing along the way.
    """
    if not xml_text:
        return ""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return ""

    current = None
    for segment in path.split("/"):
        if not segment:
            continue
        if segment.startswith("@"):
            if current is None:
                return ""
            return _attribute(current, segment[1:])
        if current is None:
            if _local_name(root.tag) != segment:
                return ""
            current = root
            continue
        current = next((c for c in current if _local_name(c.tag) == segment), None)
        if current is None:
            return ""

    if current is None:
        return ""
    return "".join(current.itertext())


def _local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _attribute(element: ET.Element, name: str) -> str:
    for key, value in element.attrib.items():
        if _local_name(key) == name:
            return value
    return ""
