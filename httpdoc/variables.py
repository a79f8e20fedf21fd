"""httpdoc variables - {{name}} and {{$function args}} placeholder resolution.

Resolution never raises. Anything that cannot be resolved is left in the
text as-is, so callers can detect leftovers with has_unresolved_variables().
"""

from __future__ import annotations

import calendar
import datetime
import email.utils
import os
import random
import re
import uuid
from collections.abc import Mapping

DYNAMIC_VARIABLE_RE = re.compile(r"\{\{\$(\w+)(?:\s+(.+?))?\}\}")
SIMPLE_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")
RESPONSE_REFERENCE_RE = re.compile(r"\{\{(\w+)\.(response|request)\.(body|headers)\.([^}]+)\}\}")
ANY_PLACEHOLDER_RE = re.compile(r"\{\{[^{}]+\}\}")

INT_MAX = 2**31 - 1

DEFAULT_UTC_FORMAT = "yyyy-MM-ddTHH:mm:ssZ"
DEFAULT_LOCAL_FORMAT = "yyyy-MM-ddTHH:mm:sszzz"
NAMED_FORMATS = ("rfc1123", "iso8601")

_INT_RE = re.compile(r"^[+-]?\d+$")
_QUOTED_FORMAT_RE = re.compile(r"""^(["'])(.*?)\1(?:\s+|$)""")
_FORMAT_TOKEN_RE = re.compile(
    r"yyyy|yy|MMMM|MMM|MM|M|dddd|ddd|dd|d|HH|H|hh|h|mm|m|ss|s|fff|ff|f|tt|zzz|zz|z|K"
    r"|'[^']*'|\"[^\"]*\"|\\.|.",
    re.DOTALL,
)

_MONTH_NAMES = [
    "",
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class VariableResolver:
    """Resolves placeholders against a case-sensitive variable map.

    *environ* is the mapping read by ``$processEnv`` and ``$dotEnv``;
    it defaults to ``os.environ`` at the time of each lookup.

    The variable map is mutable; share a resolver across threads only
    with external locking.
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._variables: dict[str, str] = {}
        self._environ = environ
        self._random = random.Random()

    @property
    def variables(self) -> dict[str, str]:
        return dict(self._variables)

    def set_variable(self, name: str, value: str) -> None:
        self._variables[name] = value

    def set_variables(self, variables: Mapping[str, str] | None) -> None:
        if not variables:
            return
        for name, value in variables.items():
            self._variables[name] = value

    def clear(self) -> None:
        self._variables.clear()

    # ── Resolution ───────────────────────────────────────────────────────

    def resolve(self, text: str | None) -> str | None:
        """Resolve dynamic functions first, then simple variables."""
        if not text:
            return text
        return self.resolve_simple_variables(self.resolve_dynamic_variables(text))

    def resolve_dynamic_variables(self, text: str | None) -> str | None:
        if not text:
            return text

        def _replace(m: re.Match) -> str:
            arguments = m.group(2).strip() if m.group(2) is not None else None
            return self.resolve_dynamic_variable(m.group(1).lower(), arguments)

        return DYNAMIC_VARIABLE_RE.sub(_replace, text)

    def resolve_simple_variables(self, text: str | None) -> str | None:
        if not text:
            return text

        def _replace(m: re.Match) -> str:
            return self._variables.get(m.group(1), m.group(0))

        return SIMPLE_VARIABLE_RE.sub(_replace, text)

    def resolve_dynamic_variable(self, function_name: str, arguments: str | None) -> str:
        """Evaluate one ``{{$function args}}``; *function_name* is lowercase."""
        if function_name == "guid":
            return str(uuid.uuid4())
        if function_name == "timestamp":
            return self._resolve_timestamp(arguments)
        if function_name == "randomint":
            return self._resolve_random_int(arguments)
        if function_name == "datetime":
            return self._resolve_datetime(arguments, local=False)
        if function_name == "localdatetime":
            return self._resolve_datetime(arguments, local=True)
        if function_name in ("processenv", "dotenv"):
            return self._resolve_env(arguments)

        # Unknown functions pass through untouched apart from the name's case
        if arguments is not None:
            return f"{{{{${function_name} {arguments}}}}}"
        return f"{{{{${function_name}}}}}"

    def _resolve_timestamp(self, arguments: str | None) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        _, offset_value, offset_unit = parse_datetime_arguments(arguments)
        if offset_unit is not None:
            now = apply_offset(now, offset_value, offset_unit)
        return str(int(now.timestamp()))

    def _resolve_random_int(self, arguments: str | None) -> str:
        parts = arguments.split() if arguments else []

        if len(parts) == 1 and _INT_RE.match(parts[0]):
            low, high = 0, int(parts[0])
        elif len(parts) >= 2 and _INT_RE.match(parts[0]) and _INT_RE.match(parts[1]):
            low, high = int(parts[0]), int(parts[1])
        else:
            low, high = 0, INT_MAX

        if high <= low:
            return str(low)
        return str(self._random.randrange(low, high))

    def _resolve_datetime(self, arguments: str | None, local: bool) -> str:
        fmt, offset_value, offset_unit = parse_datetime_arguments(arguments)
        if local:
            now = datetime.datetime.now().astimezone()
        else:
            now = datetime.datetime.now(datetime.timezone.utc)
        if offset_unit is not None:
            now = apply_offset(now, offset_value, offset_unit)
        return format_datetime(now, fmt, local=local)

    def _resolve_env(self, name: str | None) -> str:
        if not name or not name.strip():
            return ""
        environ = os.environ if self._environ is None else self._environ
        return environ.get(name.strip()) or ""

    # ── Queries ──────────────────────────────────────────────────────────

    def get_variable_names(self, text: str | None) -> set[str]:
        """Names used as plain ``{{name}}`` placeholders."""
        if not text:
            return set()
        return {m.group(1) for m in SIMPLE_VARIABLE_RE.finditer(text)}

    def get_response_reference_names(self, text: str | None) -> set[str]:
        """Request names used in ``{{name.response...}}`` / ``{{name.request...}}``."""
        if not text:
            return set()
        return {m.group(1) for m in RESPONSE_REFERENCE_RE.finditer(text)}

    def has_response_references(self, text: str | None) -> bool:
        if not text:
            return False
        return RESPONSE_REFERENCE_RE.search(text) is not None

    def has_unresolved_variables(self, text: str | None) -> bool:
        if not text:
            return False
        return ANY_PLACEHOLDER_RE.search(text) is not None


# ── Date/time helpers ────────────────────────────────────────────────────


def apply_offset(instant: datetime.datetime, value: int, unit: str | None) -> datetime.datetime:
    """Shift *instant* by *value* units.

    Units: ms, s, m, h, d, w (7 days), M (calendar months), y (calendar
    years). Unknown units, and offsets that leave the supported date range,
    return *instant* unchanged.
    """
    try:
        if unit == "ms":
            return instant + datetime.timedelta(milliseconds=value)
        if unit == "s":
            return instant + datetime.timedelta(seconds=value)
        if unit == "m":
            return instant + datetime.timedelta(minutes=value)
        if unit == "h":
            return instant + datetime.timedelta(hours=value)
        if unit == "d":
            return instant + datetime.timedelta(days=value)
        if unit == "w":
            return instant + datetime.timedelta(weeks=value)
        if unit == "M":
            return _add_months(instant, value)
        if unit == "y":
            return _add_months(instant, value * 12)
    except (OverflowError, ValueError):
        return instant
    return instant


def _add_months(instant: datetime.datetime, months: int) -> datetime.datetime:
    total = instant.year * 12 + (instant.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(instant.day, calendar.monthrange(year, month)[1])
    return instant.replace(year=year, month=month, day=day)


def parse_datetime_arguments(arguments: str | None) -> tuple[str | None, int, str | None]:
    """Split ``[format] [offset unit]`` into ``(format, offset_value, offset_unit)``.

    The format may be quoted with ``"`` or ``'`` to include spaces.
    ``rfc1123`` and ``iso8601`` are returned lowercased.
    """
    if not arguments or not arguments.strip():
        return None, 0, None

    rest = arguments.strip()
    fmt = None
    m = _QUOTED_FORMAT_RE.match(rest)
    if m:
        fmt = m.group(2)
        rest = rest[m.end() :]
    elif rest[0] in "\"'":
        # Unterminated quote swallows everything; use the default format.
        return None, 0, None

    parts = rest.split()
    index = 0
    if fmt is None and parts and not _INT_RE.match(parts[0]):
        fmt = parts[0].lower() if parts[0].lower() in NAMED_FORMATS else parts[0]
        index = 1

    offset_value = 0
    offset_unit = None
    if index < len(parts) and _INT_RE.match(parts[index]):
        offset_value = int(parts[index])
        index += 1
        if index < len(parts):
            offset_unit = parts[index]

    return fmt, offset_value, offset_unit


def format_datetime(instant: datetime.datetime, fmt: str | None, local: bool = False) -> str:
    """Render *instant* with a named, .NET-style or strftime format."""
    default = DEFAULT_LOCAL_FORMAT if local else DEFAULT_UTC_FORMAT
    if not fmt or fmt == "iso8601":
        return _format_custom(instant, default)
    if fmt == "rfc1123":
        return email.utils.format_datetime(
            instant.astimezone(datetime.timezone.utc),
            usegmt=True,
        )
    try:
        if "%" in fmt:
            return instant.strftime(fmt)
        return _format_custom(instant, fmt)
    except ValueError:
        return _format_custom(instant, default)


def _format_custom(instant: datetime.datetime, fmt: str) -> str:
    return "".join(_render_token(instant, tok) for tok in _FORMAT_TOKEN_RE.findall(fmt))


def _render_token(dt: datetime.datetime, token: str) -> str:
    if token == "yyyy":
        return f"{dt.year:04d}"
    if token == "yy":
        return f"{dt.year % 100:02d}"
    if token == "MMMM":
        return _MONTH_NAMES[dt.month]
    if token == "MMM":
        return _MONTH_NAMES[dt.month][:3]
    if token == "MM":
        return f"{dt.month:02d}"
    if token == "M":
        return str(dt.month)
    if token == "dddd":
        return _DAY_NAMES[dt.weekday()]
    if token == "ddd":
        return _DAY_NAMES[dt.weekday()][:3]
    if token == "dd":
        return f"{dt.day:02d}"
    if token == "d":
        return str(dt.day)
    if token == "HH":
        return f"{dt.hour:02d}"
    if token == "H":
        return str(dt.hour)
    if token in ("hh", "h"):
        hour = dt.hour % 12 or 12
        return f"{hour:02d}" if token == "hh" else str(hour)
    if token == "mm":
        return f"{dt.minute:02d}"
    if token == "m":
        return str(dt.minute)
    if token == "ss":
        return f"{dt.second:02d}"
    if token == "s":
        return str(dt.second)
    if token in ("fff", "ff", "f"):
        return f"{dt.microsecond:06d}"[: len(token)]
    if token == "tt":
        return "AM" if dt.hour < 12 else "PM"
    if token in ("zzz", "zz", "z", "K"):
        return _render_utc_offset(dt, token)
    if len(token) >= 2 and token[0] in "'\"" and token[-1] == token[0]:
        return token[1:-1]
    if token.startswith("\\"):
        return token[1:]
    return token


def _render_utc_offset(dt: datetime.datetime, token: str) -> str:
    offset = dt.utcoffset() or datetime.timedelta(0)
    if token == "K" and offset == datetime.timedelta(0):
        return "Z"
    sign = "-" if offset < datetime.timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    hours, minutes = divmod(minutes, 60)
    if token == "zz":
        return f"{sign}{hours:02d}"
    if token == "z":
        return f"{sign}{hours}"
    return f"{sign}{hours:02d}:{minutes:02d}"
