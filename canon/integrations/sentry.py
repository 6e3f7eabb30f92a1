# =============================================================================
# Sentry Error Tracking
# =============================================================================
#
# Enabled when SENTRY_DSN is set (in the environment or .env).
#
#   init_sentry()       once per CLI invocation, from the Typer callback
#   capture_exception() fatal run errors (registry, persistence, config)
#   capture_message()   per-task problems such as rejected translations
#
# Without a DSN every call falls back to the standard logger.
#
# =============================================================================

import logging
from contextlib import contextmanager
from typing import Iterator

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from canon.config import Settings, get_settings

logger = logging.getLogger(__name__)

_SECRET_PREFIXES = ("sk-", "sk_", "AIza", "ghp_", "github_pat_")


def init_sentry(settings: Settings | None = None, command: str | None = None) -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    settings = settings or get_settings()

    if not settings.sentry_dsn:
        logger.debug("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[
            # Breadcrumbs from INFO, events only from ERROR
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        before_send=_scrub_secrets,
    )
    sentry_sdk.set_tag("llm_provider", settings.llm_provider)
    if command:
        sentry_sdk.set_tag("command", command)

    logger.info(f"Sentry initialized for {settings.environment}")
    return True


def _scrub_secrets(event: dict, hint: dict) -> dict | None:
    """Mask extra values that look like API keys or tokens."""
    extra = event.get("extra") or {}
    for key, value in extra.items():
        if isinstance(value, str) and value.startswith(_SECRET_PREFIXES):
            extra[key] = "[Filtered]"
    return event


def is_enabled() -> bool:
    return sentry_sdk.get_client().is_active()


@contextmanager
def _scope(context: dict) -> Iterator[None]:
    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        yield


def capture_exception(error: Exception, **context) -> str | None:
    """
    Report a fatal pipeline error.

    Returns the event ID if captured, None otherwise.
    """
    if not is_enabled():
        logger.error(f"Fatal error: {error}", exc_info=error)
        return None

    with _scope(context):
        return sentry_sdk.capture_exception(error)


def capture_message(message: str, level: str = "info", **context) -> str | None:
    """Report a non-fatal event (fatal, error, warning, info, debug)."""
    if not is_enabled():
        logger.log(getattr(logging, level.upper(), logging.INFO), message)
        return None

    with _scope(context):
        return sentry_sdk.capture_message(message, level=level)
