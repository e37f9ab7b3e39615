"""Process-wide logging setup for the doccontrol CLI.

``setup_logging`` runs at import time of the entry point, before litellm
is imported, with only the root format and a default level. Once
``Settings`` are loaded, ``apply_log_levels`` moves the root logger to
``log_level`` and, in debug mode, opens up the ``doccontrol`` loggers.
``cleanup_third_party_handlers`` runs after every import is done and
drops the handlers litellm attaches to its own loggers.

``setup_logging`` and ``cleanup_third_party_handlers`` are one-shot;
``apply_log_levels`` may run again, e.g. once per CLI invocation.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

PACKAGE_LOGGER = "doccontrol"

# Held at WARNING whatever the configured level
_SUPPRESSED_LOGGERS = (
    "LiteLLM",
    "LiteLLM Router",
    "LiteLLM Proxy",
    "openai._base_client",
    "httpx",
    "aiosqlite",
)

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

_phase1_done = False
_phase2_done = False


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {name!r}"
        raise ValueError(msg)
    return level


def setup_logging(level: str = "INFO") -> None:
    """Install the root handler and quiet third-party loggers.

    Must run before anything imports litellm.
    """
    global _phase1_done  # noqa: PLW0603
    if _phase1_done:
        return
    _phase1_done = True

    # Read by litellm._logging when it is first imported.
    os.environ.setdefault("LITELLM_LOG", "WARNING")

    logging.basicConfig(
        level=_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def apply_log_levels(level: str, *, debug: bool = False) -> None:
    """Apply the configured level once settings are known.

    ``debug`` sets the package logger to DEBUG; the suppressed
    third-party loggers stay at WARNING either way.
    """
    logging.getLogger().setLevel(_level(level))
    logging.getLogger(PACKAGE_LOGGER).setLevel(
        logging.DEBUG if debug else logging.NOTSET
    )


def cleanup_third_party_handlers() -> None:
    """Drop litellm's own StreamHandlers so its records print once.

    litellm attaches a handler to each of its loggers at import time;
    records then show up twice, once from that handler and once via
    propagation to root.
    """
    global _phase2_done  # noqa: PLW0603
    if _phase2_done:
        return
    _phase2_done = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
