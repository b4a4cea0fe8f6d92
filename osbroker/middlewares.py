"""Middlewares that validate headers and copy request data into the context."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from .context import ContextKey
from .web import (
    API_VERSION_HEADER,
    REQUEST_IDENTITY_HEADER,
    Handler,
    Request,
    Response,
    _scan_version,
    json_response,
)

API_VERSION_INVALID_KEY = "broker-api-version-invalid"
_API_VERSION_LOG_KEY = "version-header-check"

CORRELATION_ID_HEADERS = (
    "X-Correlation-ID",
    "X-CorrelationID",
    "X-ForRequest-ID",
    "X-Request-ID",
    "X-Vcap-Request-Id",
)


def check_broker_api_version_header(request: Request) -> None:
    """Raise ValueError unless the request asks for a 2.x broker API."""
    api_version = request.header(API_VERSION_HEADER)
    if api_version == "":
        raise ValueError("X-Broker-API-Version Header not set")
    values = _scan_version(api_version)
    if len(values) < 2:
        raise ValueError("X-Broker-API-Version Header must contain a version")
    if values[0] != 2:
        raise ValueError("X-Broker-API-Version Header must be 2.x")


@dataclass
class APIVersionMiddleware:
    """Rejects requests whose API version header is missing or unsupported."""

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("osbroker"))

    def validate_api_version_header(self, next_handler: Handler) -> Handler:
        def handler(request: Request) -> Response:
            try:
                check_broker_api_version_header(request)
            except ValueError as err:
                self.logger.error(
                    f"{_API_VERSION_LOG_KEY}.{API_VERSION_INVALID_KEY}",
                    extra={"data": {"error": str(err)}},
                )
                return json_response(
                    412,
                    request.header(REQUEST_IDENTITY_HEADER),
                    {"Description": str(err)},
                )
            return next_handler(request)

        return handler


def _header_to_context(header: str, key: ContextKey, next_handler: Handler) -> Handler:
    def handler(request: Request) -> Response:
        ctx = request.context.with_value(key, request.header(header))
        return next_handler(request.with_context(ctx))

    return handler


def add_correlation_id_to_context(next_handler: Handler) -> Handler:
    """Store a correlation ID from the first set header, or a fresh UUID."""

    def handler(request: Request) -> Response:
        correlation_id = next(
            (value for value in map(request.header, CORRELATION_ID_HEADERS) if value),
            None,
        )
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())
        ctx = request.context.with_value(ContextKey.CORRELATION_ID, correlation_id)
        return next_handler(request.with_context(ctx))

    return handler


def add_info_location_to_context(next_handler: Handler) -> Handler:
    """Store the X-Api-Info-Location header in the context."""
    return _header_to_context("X-Api-Info-Location", ContextKey.INFO_LOCATION, next_handler)


def add_originating_identity_to_context(next_handler: Handler) -> Handler:
    """Store the originating identity header in the context."""
    return _header_to_context(
        "X-Broker-API-Originating-Identity", ContextKey.ORIGINATING_IDENTITY, next_handler
    )


def add_request_identity_to_context(next_handler: Handler) -> Handler:
    """Store the request identity header in the context."""
    return _header_to_context(
        REQUEST_IDENTITY_HEADER, ContextKey.REQUEST_IDENTITY, next_handler
    )