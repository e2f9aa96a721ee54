"""structlog setup for the keeper.

Every record goes through the stdlib logging tree so ccxt and aiohttp
output shares one handler. Records carry the trace id bound by
bind_trace(), which follows the cycle into every coroutine it spawns.

LOG_FORMAT selects the renderer: "console" (default) or "json".
"""

import logging
import os
import time

import structlog

_NOISY_LIBRARIES = ("ccxt", "aiohttp", "asyncio")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Route structlog through stdlib logging with one stream handler on the root."""
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_trace(prefix: str = "cross-manager") -> str:
    """Bind a fresh trace id to the current async context and return it."""
    trace_id = f"{prefix}-{int(time.time() * 1000)}"
    structlog.contextvars.bind_contextvars(trace_id=trace_id)
    return trace_id


def clear_trace() -> None:
    """Drop the trace id bound by bind_trace()."""
    structlog.contextvars.unbind_contextvars("trace_id")
