# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for the serpmap CLI.

``serpmap`` logs human-readable lines to stderr; ``serpmap --log-json``
switches to one JSON object per line. Every module logs through
``logging.getLogger(__name__)``, and the ``query`` / ``url`` values bound
with ``structlog.contextvars.bound_contextvars`` by the pipeline and by
per-page extraction appear on each line emitted inside that scope.

Leaf module, no serpmap imports. Safe to call before anything else runs.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Chatty third-party loggers kept at WARNING unless running at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _stderr_handler(json_output: bool, pre_chain: list) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route serpmap and third-party logging through one stderr handler.

    Args:
        json_output: JSON lines (``--log-json``) instead of console output.
        level: Root level name; ``-v`` passes DEBUG. Unknown names mean INFO.

    Calling it again replaces the previous handler.
    """
    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_stderr_handler(json_output, shared))
    root_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(root_level)

    quiet_level = root_level if root_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
