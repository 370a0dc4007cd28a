import os

# Config reads the environment at import time, so these must be set before any src import
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_service_role_key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key")
os.environ.setdefault("STRIPE_PROFESSIONAL_MONTHLY_PRICE_ID", "price_pro_monthly")
os.environ.setdefault("STRIPE_PROFESSIONAL_ANNUAL_PRICE_ID", "price_pro_annual")
os.environ.setdefault("STRIPE_PREMIUM_MONTHLY_PRICE_ID", "price_premium_monthly")
os.environ.setdefault("STRIPE_PREMIUM_ANNUAL_PRICE_ID", "price_premium_annual")
os.environ.setdefault("SENTRY_ENABLED", "false")

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture
def processor():
    """Processor capability double; every call is recorded"""
    return MagicMock()


@pytest.fixture(autouse=True)
def _clear_user_cache():
    from src.db.users import clear_user_cache

    clear_user_cache()
    yield
    clear_user_cache()
