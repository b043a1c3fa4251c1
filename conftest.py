"""Shared pytest setup: configuration path and singleton resets."""

import os
from pathlib import Path

import pytest

ROOT = Path(__file__).parent
os.environ.setdefault("CONFIG_PATH", str(ROOT / "config" / "reconciler.yaml"))
os.environ.setdefault("LOG_FORMAT", "console")


@pytest.fixture(autouse=True)
def reset_singletons():
    """Give every test empty stores, a real clock and freshly loaded config."""
    from play_reconciler.config import reset_config
    from play_reconciler.repositories.affiliate_store import reset_affiliate_store
    from play_reconciler.repositories.audit_log import reset_audit_log
    from play_reconciler.repositories.link_store import reset_link_stores
    from play_reconciler.repositories.notification_store import reset_notification_stores
    from play_reconciler.repositories.stats_store import reset_stats_store
    from play_reconciler.repositories.subscription_store import reset_subscription_store
    from play_reconciler.repositories.user_store import reset_user_store
    from play_reconciler.services.clock import reset_clock
    from play_reconciler.services.provider_adapter import set_provider_client

    def reset_all():
        reset_config()
        reset_subscription_store()
        reset_user_store()
        reset_link_stores()
        reset_affiliate_store()
        reset_audit_log()
        reset_stats_store()
        reset_notification_stores()
        reset_clock()
        set_provider_client(None)

    reset_all()
    yield
    reset_all()
