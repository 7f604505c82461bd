"""Observability helpers for the ingestion pipeline.

Provides structlog configuration, a stdlib logging bridge, correlation ids
(bound per match while it is reconciled and flushed) and the ``traced``
decorator used on store operations.
"""

import functools
import inspect
import json
import logging
import sys
import time
from collections.abc import Callable
from typing import Any, TypeVar, cast

import structlog
from pydantic import BaseModel
from structlog.contextvars import bind_contextvars, unbind_contextvars

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        *_SHARED_PROCESSORS,
        structlog.processors.dict_tracebacks,
        structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),  # type: ignore[list-item]
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def configure_stdlib_json_logging(level: str = "INFO", file_target: str | None = None) -> None:
    """Route stdlib ``logging`` records through structlog's renderer.

    Modules in this package log with ``logging.getLogger(__name__)``; this
    bridge gives them the same JSON (or console, on a TTY) output and the
    bound correlation id.
    """
    renderer: Any = (
        structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if file_target:
        handlers.append(logging.FileHandler(file_target, encoding="utf-8"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level.upper())


def set_correlation_id(correlation_id: str) -> None:
    """Bind a correlation id (usually a match key) to all subsequent logs."""
    bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    unbind_contextvars("correlation_id")


def _serialize_value(value: Any, max_length: int = 500) -> Any:
    """Safely serialize a value for logging."""
    try:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json", exclude_unset=True)
        json_str = json.dumps(value, default=str)
        if len(json_str) > max_length:
            return json_str[:max_length] + "..."
        return json.loads(json_str)
    except (TypeError, ValueError):
        str_repr = str(value)
        if len(str_repr) > max_length:
            return str_repr[:max_length] + "..."
        return str_repr


def traced(
    *,
    capture_args: bool = False,
    log_level: str = "DEBUG",
    add_metadata: dict[str, Any] | None = None,
) -> Callable[[F], F]:
    """Decorator that logs entry, duration and failures of a call.

    Exceptions are logged and re-raised unchanged.

    Example:
        >>> @traced(add_metadata={"layer": "db", "op": "persist_match"})
        ... async def persist_match(batch) -> bool:
        ...     ...
    """

    def decorator(func: F) -> F:
        name = f"{func.__module__}.{func.__qualname__}"
        metadata = add_metadata or {}

        def _start(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
            execution_id = f"{name}_{int(time.time() * 1_000_000)}"
            bind_contextvars(execution_id=execution_id)
            logger.log(
                getattr(logging, log_level.upper(), logging.DEBUG),
                "call_start",
                function_name=name,
                args=[_serialize_value(a) for a in args[1:]] if capture_args else None,
                kwargs={k: _serialize_value(v) for k, v in kwargs.items()} if capture_args else None,
                **metadata,
            )
            return execution_id

        def _failed(exc: Exception, started: float) -> None:
            logger.error(
                "call_failed",
                function_name=name,
                duration_ms=(time.perf_counter() - started) * 1000,
                error_type=type(exc).__name__,
                error_message=str(exc),
                **metadata,
            )

        def _done(started: float) -> None:
            logger.log(
                getattr(logging, log_level.upper(), logging.DEBUG),
                "call_done",
                function_name=name,
                duration_ms=(time.perf_counter() - started) * 1000,
                **metadata,
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                _start(args, kwargs)
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    _failed(exc, started)
                    raise
                finally:
                    unbind_contextvars("execution_id")
                _done(started)
                return result

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            _start(args, kwargs)
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _failed(exc, started)
                raise
            finally:
                unbind_contextvars("execution_id")
            _done(started)
            return result

        return cast(F, sync_wrapper)

    return decorator


def trace_adapter(func: F) -> F:
    """Decorator specifically for adapter layer functions."""
    return traced(log_level="INFO", add_metadata={"layer": "adapter"})(func)
