"""
Shared API
==========

Middleware and exception handlers used by every router.
"""

from resolvehub.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
    install_middleware,
)

__all__ = [
    "CorrelationIDMiddleware",
    "LoggingMiddleware",
    "application_exception_handler",
    "global_exception_handler",
    "install_middleware",
]
