"""Process-wide logging setup.

``logger`` is the package root logger; modules log through
``logging.getLogger(__name__)`` and inherit its handler. Each process gets a
short run id so log lines from concurrent workers can be told apart.
"""
from __future__ import annotations

import logging
import uuid

from ees.config import settings

_RUN_ID = uuid.uuid4().hex[:8]


class _RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID
        return True


def get_run_id() -> str:
    """Return the correlation id of the current process."""
    return _RUN_ID


def _configure() -> logging.Logger:
    log = logging.getLogger("ees")
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.addFilter(_RunIdFilter())
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(run_id)s] %(levelname)s %(name)s: %(message)s"
            )
        )
        log.addHandler(handler)
    log.setLevel(settings.LOG_LEVEL.upper())
    return log


logger = _configure()
