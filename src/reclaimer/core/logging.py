# src/reclaimer/core/logging.py
"""Log setup for reclaimer runs.

One stderr handler renders everything, whether it was logged through
structlog or a library's plain logging.getLogger(): JSON lines for
scheduled purges, a console layout for operators at a terminal. stdout
is left to the CLI reports.

Each purge decision carries the record id and the locator it touched,
and run identity (operation_id, policy) is bound for the length of a
run, so one run can be pulled out of a shared log with a single filter.
Credentials never reach the log: secret-named fields are masked and
DSN passwords are cut out of any string value.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Field names whose values never appear in logs
SECRET_FIELD_NAMES = frozenset({"secret_access_key", "access_key_id", "password", "token", "api_key"})

_DSN_PASSWORD = re.compile(r"(://[^:/@]+:)([^@]+)(@)")

# Storage SDKs log every HTTP exchange; a purge makes thousands.
_SDK_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3", "httpx", "httpcore")

_RUN_KEYS = ("operation_id", "policy")


def mask_dsn(value: str) -> str:
    """Replace the password of any user:password@host DSN in value."""
    return _DSN_PASSWORD.sub(r"\1***\3", value)


def _mask_credentials(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        if key in SECRET_FIELD_NAMES and value is not None:
            event_dict[key] = "***"
        elif isinstance(value, str) and "://" in value:
            event_dict[key] = mask_dsn(value)
    return event_dict


def _drop_formatter_keys(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # ProcessorFormatter always sets both; a KeyError means the wiring broke
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def _output_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route structlog and stdlib logging to one stderr handler.

    Safe to call again: the root handler is replaced, not stacked, and
    loggers are not cached, so a later call takes effect everywhere.

    Raises:
        ValueError: level is not a logging level name
    """
    threshold = _resolve_level(level)
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        _mask_credentials,
    ]
    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_output_chain(json_output), foreign_pre_chain=pre_chain))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(threshold)

    # SDK chatter only at WARNING and above, and never below the root level
    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(max(threshold, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_operation(operation_id: str, policy_name: str) -> None:
    """Tag every log line with the run until unbind_operation()."""
    structlog.contextvars.bind_contextvars(**dict(zip(_RUN_KEYS, (operation_id, policy_name), strict=True)))


def unbind_operation() -> None:
    structlog.contextvars.unbind_contextvars(*_RUN_KEYS)
