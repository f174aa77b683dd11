"""One-line structured events for scheduled jobs and phone callbacks."""

from __future__ import annotations

import logging

from syncgate.util.logger import logger


def log_event(event: str, *, level: int = logging.INFO, **fields: object) -> None:
    rendered = " ".join(f"{key}={fields[key]!r}" for key in sorted(fields))
    logger.log(level, "event=%s %s", event, rendered)
