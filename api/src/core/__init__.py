# Core infrastructure
from src.core.context import (
    RequestContext,
    bind_enrollment,
    clear_context,
    get_context,
    get_correlation_id,
    get_request_id,
    get_trace_id,
    get_user_id,
    set_correlation_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware, set_user_context


__all__ = [
    "RequestContext",
    "RequestContextMiddleware",
    "bind_enrollment",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_correlation_id",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "get_user_id",
    "init_async_cassandra",
    "set_correlation_id",
    "set_request_id",
    "set_trace_id",
    "set_user_context",
    "set_user_id",
    "shutdown_async_cassandra",
]
