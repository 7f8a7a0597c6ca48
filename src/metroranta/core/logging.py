"""
Logging setup shared by the API and the CLI.

`config/logging.yaml` is the base. The effective level comes from the caller (CLI
`--log-level`), else from `app.log_level` in settings, and is applied to the root
logger and to every handler. Category lookups run in worker threads, so the default
format includes the thread name.
"""

from __future__ import annotations

import copy
import logging
import logging.config

from metroranta.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    config = copy.deepcopy(get_logging_config())
    effective = (level or get_settings().app.log_level).upper()

    config.setdefault("root", {})["level"] = effective
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict):
            handler["level"] = effective

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured at %s", effective)
