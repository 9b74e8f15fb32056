"""Sentry integration for error tracking and performance monitoring.

Sentry is only initialized when SQL_EXPORT_SENTRY_DSN is set.
"""

import os

import sentry_sdk

from sql_export.__about__ import __version__

SENTRY_DSN_ENV = "SQL_EXPORT_SENTRY_DSN"


def setup_sentry(environment: str = "local") -> bool:
    """Initialize Sentry if a DSN is configured. Returns True when enabled."""
    dsn = os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=environment,
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
