"""Immutable request contexts and helpers for storing catalog entries in them."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Hashable, Mapping, Optional


class ContextKey(str, Enum):
    """Well-known keys under which middlewares store request data."""

    CORRELATION_ID = "correlation-id"
    INFO_LOCATION = "infoLocation"
    ORIGINATING_IDENTITY = "originatingIdentity"
    REQUEST_IDENTITY = "requestIdentity"


class _CatalogKey(Enum):
    SERVICE = "brokerapi_service"
    PLAN = "brokerapi_plan"


class Context:
    """An immutable bag of request-scoped values."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[Hashable, Any]] = None) -> None:
        self._values = MappingProxyType(dict(values or {}))

    def with_value(self, key: Hashable, value: Any) -> "Context":
        """Return a new context that also holds ``value`` under ``key``."""
        return Context({**self._values, key: value})

    def value(self, key: Hashable) -> Any:
        """Return the value stored under ``key``, or None."""
        return self._values.get(key)

    def __repr__(self) -> str:
        return f"Context({dict(self._values)!r})"


def add_service_to_context(ctx: Context, service: Any) -> Context:
    """Store a catalog service in the context; a None service leaves it unchanged."""
    if service is None:
        return ctx
    return ctx.with_value(_CatalogKey.SERVICE, service)


def retrieve_service_from_context(ctx: Context) -> Any:
    """Return the catalog service stored in the context, or None."""
    return ctx.value(_CatalogKey.SERVICE)


def add_service_plan_to_context(ctx: Context, plan: Any) -> Context:
    """Store a service plan in the context; a None plan leaves it unchanged."""
    if plan is None:
        return ctx
    return ctx.with_value(_CatalogKey.PLAN, plan)


def retrieve_service_plan_from_context(ctx: Context) -> Any:
    """Return the service plan stored in the context, or None."""
    return ctx.value(_CatalogKey.PLAN)