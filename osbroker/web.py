"""Minimal request and response types shared by middlewares and handlers."""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping
from urllib.parse import parse_qs

from .context import Context

REQUEST_IDENTITY_HEADER = "X-Broker-API-Request-Identity"
API_VERSION_HEADER = "X-Broker-API-Version"

_INT = re.compile(r"\s*([+-]?\d+)")
_FORM_METHODS = {"POST", "PUT", "PATCH"}
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _scan_version(text: str) -> List[int]:
    """Scan ``<int>.<int>`` from the start of text; return the integers read."""
    values: List[int] = []
    match = _INT.match(text)
    if not match:
        return values
    values.append(int(match.group(1)))
    rest = text[match.end():]
    if not rest.startswith("."):
        return values
    match = _INT.match(rest, 1)
    if match:
        values.append(int(match.group(1)))
    return values


def _first_values(raw: str) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(raw, keep_blank_values=True).items()}


@dataclass
class Request:
    """An incoming HTTP request."""

    method: str = "GET"
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: str = ""
    body: bytes = b""
    path_params: Mapping[str, str] = field(default_factory=dict)
    context: Context = field(default_factory=Context)

    def __post_init__(self) -> None:
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def header(self, name: str) -> str:
        """Return a header's value, case-insensitively, or an empty string."""
        return self.headers.get(name.lower(), "")

    def form_value(self, name: str) -> str:
        """Return a form value: url-encoded body fields first, then the query."""
        if (
            self.method.upper() in _FORM_METHODS
            and self.header("Content-Type").split(";")[0].strip().lower() == _FORM_CONTENT_TYPE
        ):
            body_values = _first_values(self.body.decode("utf-8", errors="replace"))
            if name in body_values:
                return body_values[name]
        return _first_values(self.query).get(name, "")

    def path_value(self, name: str) -> str:
        """Return a matched path parameter, or an empty string."""
        return self.path_params.get(name, "")

    def with_context(self, ctx: Context) -> "Request":
        """Return a copy of this request carrying ``ctx``."""
        return dataclasses.replace(self, context=ctx)


@dataclass
class Response:
    """An outgoing HTTP response."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


Handler = Callable[[Request], Response]


@dataclass(frozen=True)
class BrokerVersion:
    """The broker API version a client asked for."""

    major: int = 0
    minor: int = 0


def get_api_version(request: Request) -> BrokerVersion:
    """Read the API version header; missing parts stay zero."""
    values = _scan_version(request.header(API_VERSION_HEADER))
    values += [0] * (2 - len(values))
    return BrokerVersion(major=values[0], minor=values[1])


def json_response(status: int, request_identity: str, body: Any) -> Response:
    """Build a JSON response, echoing the request identity when it is set."""
    headers = {"Content-Type": "application/json"}
    if request_identity:
        headers[REQUEST_IDENTITY_HEADER] = request_identity
    payload = json.dumps(body, ensure_ascii=False, separators=(",", ":")) + "\n"
    return Response(status=status, headers=headers, body=payload.encode("utf-8"))