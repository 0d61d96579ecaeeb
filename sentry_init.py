import os
import logging

try:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
except ImportError:
    sentry_sdk = None

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """Initialize Sentry if SENTRY_DSN present. Returns True if initialized."""
    dsn = os.getenv('SENTRY_DSN')
    if not dsn or not sentry_sdk:
        return False

    # breadcrumbs from INFO, events from ERROR log records
    logging_integration = LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration(), logging_integration],
        traces_sample_rate=float(os.getenv('SENTRY_TRACES', '0.0')),
        environment=os.getenv('ENVIRONMENT', 'dev'),
        release=os.getenv('RELEASE', 'local'),
        send_default_pii=False,
    )
    return True


def capture_exception(exc: BaseException) -> None:
    if sentry_sdk:
        sentry_sdk.capture_exception(exc)


def tag_event(event_type: str, user_hash: str = None) -> None:
    """Attach the event kind and an obfuscated user id to the current scope."""
    if not sentry_sdk:
        return
    sentry_sdk.set_tag('event_type', event_type)
    if user_hash:
        sentry_sdk.set_user({'id': user_hash})
