"""Request handlers, middleware, context and models for Open Service Broker API servers."""

__version__ = "0.1.0"

__all__ = [
    "binding_handlers",
    "blog",
    "context",
    "instance_handlers",
    "middleware",
    "middlewares",
    "models",
    "web",
]