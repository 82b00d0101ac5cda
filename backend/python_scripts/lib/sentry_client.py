import logging
import os
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

_sentry_initialized = False


def init_sentry(service_name: str) -> bool:
    """Initialize Sentry if SENTRY_DSN is set; otherwise no-op.

    Returns True when Sentry is active after the call.
    """
    global _sentry_initialized
    if _sentry_initialized:
        return True

    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("GIT_SHA"),
        traces_sample_rate=0.0,
    )
    sentry_sdk.set_tag("service", service_name)
    _sentry_initialized = True
    return True


def capture_exception(exc: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Report an exception without ever raising if Sentry itself fails."""
    if not _sentry_initialized:
        return
    try:
        if context:
            sentry_sdk.capture_exception(exc, extras=context)
        else:
            sentry_sdk.capture_exception(exc)
    except Exception:
        logger.warning("Sentry capture failed", exc_info=True)
