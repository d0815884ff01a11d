"""
Switchboard entry point and logging setup.

``configure_logging`` is idempotent and is called by the CLI before any
command runs; library users that want Switchboard's log format call it
themselves.
"""

from __future__ import annotations

import logging

import structlog

# Log fields that may carry user or model text.
_SENSITIVE_KEYS = ("prompt", "content", "text", "detail")
_MAX_DISPLAY_LEN = 80


def _redact_sensitive_fields(logger, method_name, event_dict):
    """
    Structlog processor that truncates fields that may carry message text.

    Keeps prompts and replies out of logs beyond a short prefix.
    """
    for key in _SENSITIVE_KEYS:
        if key in event_dict:
            val = event_dict[key]
            if isinstance(val, str) and len(val) > _MAX_DISPLAY_LEN:
                event_dict[key] = val[:_MAX_DISPLAY_LEN] + "... [truncated]"
    return event_dict


_logging_configured = False


def configure_logging(level: str = "WARNING") -> None:
    """Configure structlog and standard-library logging.

    Safe to call more than once; subsequent calls only adjust the level.
    """
    global _logging_configured  # noqa: PLW0603
    numeric_level = getattr(logging, str(level).upper(), logging.WARNING)
    if _logging_configured:
        logging.getLogger().setLevel(numeric_level)
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=numeric_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            _redact_sensitive_fields,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def main():
    """Entry point for the switchboard command."""
    from switchboard.cli.app import cli

    cli()


if __name__ == "__main__":
    main()
