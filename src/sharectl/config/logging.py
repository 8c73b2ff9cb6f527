"""structlog configuration for sharectl.

Human output (colored when stderr is a terminal) or JSON lines with
``--log-json``, both on stderr. stdlib loggers under ``sharectl`` are
routed through the same processors, so every line carries the active
network (see :func:`bind_network`) and never a passphrase.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

from sharectl.domain.secrets import SEED_PREFIX

# Event-dict keys whose values are secrets.
SECRET_KEYS = frozenset({"passphrase", "seed", "network_seed"})
REDACTED = "[redacted]"

# Third-party loggers kept at WARNING even with --verbose.
QUIET_LOGGERS = ("sqlalchemy", "asyncio", "pluggy")

_SEED_RE = re.compile(re.escape(SEED_PREFIX) + r"\S+")


def bind_network(network_id: str | None) -> None:
    """Tag subsequent log lines in this context with the active network."""
    if network_id is None:
        structlog.contextvars.unbind_contextvars("network")
    else:
        structlog.contextvars.bind_contextvars(network=network_id)


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask passphrase-derived values, by key and inside the message."""
    for key in SECRET_KEYS & event_dict.keys():
        event_dict[key] = REDACTED
    event = event_dict.get("event")
    if isinstance(event, str) and SEED_PREFIX in event:
        event_dict["event"] = _SEED_RE.sub(REDACTED, event)
    return event_dict


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        verbose: Enable DEBUG-level output for ``sharectl`` loggers.
        log_json: Use the JSON renderer instead of the console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger("sharectl").setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
