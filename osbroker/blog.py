"""A structured logger that adds prefixes and request data to every record."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .context import Context, ContextKey

INSTANCE_ID_LOG_KEY = "instance-id"
BINDING_ID_LOG_KEY = "binding-id"
ERROR_KEY = "error"

_SESSION_KEYS = (ContextKey.CORRELATION_ID, ContextKey.REQUEST_IDENTITY)


def _join(*parts: str) -> str:
    return ".".join(parts)


def _append_prefix(existing: str, addition: str) -> str:
    return addition if existing == "" else _join(existing, addition)


@dataclass(frozen=True)
class Blog:
    """Logger that writes structured fields under ``extra["data"]``."""

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("osbroker"))
    prefix: str = ""
    fields: Mapping[str, Any] = field(default_factory=dict)

    def session(self, ctx: Context, prefix: str, **kwargs: Any) -> "Blog":
        """Return a logger with an extended prefix and the context's request data."""
        fields: Dict[str, Any] = {**self.fields, **kwargs}
        for key in _SESSION_KEYS:
            value = ctx.value(key)
            if value is not None:
                fields[key.value] = value
        return Blog(logger=self.logger, prefix=_append_prefix(self.prefix, prefix), fields=fields)

    def error(self, message: str, err: Optional[BaseException] = None, **kwargs: Any) -> None:
        """Log an error message together with the error that caused it."""
        extra: Dict[str, Any] = {}
        if err is not None:
            extra[ERROR_KEY] = str(err)
        extra.update(kwargs)
        self._emit(logging.ERROR, message, extra)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an informational message."""
        self._emit(logging.INFO, message, kwargs)

    def with_fields(self, **kwargs: Any) -> "Blog":
        """Return a logger that always logs the given fields."""
        return Blog(logger=self.logger, prefix=self.prefix, fields={**self.fields, **kwargs})

    def _emit(self, level: int, message: str, extra: Mapping[str, Any]) -> None:
        data = {**self.fields, **extra}
        self.logger.log(level, _join(self.prefix, message), extra={"data": data})


def instance_id(value: str) -> Dict[str, str]:
    """Field holding a service instance ID."""
    return {INSTANCE_ID_LOG_KEY: value}


def binding_id(value: str) -> Dict[str, str]:
    """Field holding a service binding ID."""
    return {BINDING_ID_LOG_KEY: value}