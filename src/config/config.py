import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _get_env_var(name: str, default: str | None = None, *, strip: bool = True) -> str | None:
    """
    Fetch an environment variable with optional whitespace trimming.

    Args:
        name: Environment variable to look up.
        default: Value to return when the env var is unset or empty.
        strip: Whether to strip leading/trailing whitespace (default: True).

    Returns:
        The normalized string value or the provided default when empty.
    """
    value = os.environ.get(name)
    if value is None:
        return default

    if strip:
        value = value.strip()

    return value or default


def _get_bool_env(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Configuration class for the application"""

    # Environment Detection
    APP_ENV = os.environ.get("APP_ENV", "development")  # development, staging, production
    IS_PRODUCTION = APP_ENV == "production"
    IS_STAGING = APP_ENV == "staging"
    IS_DEVELOPMENT = APP_ENV == "development"
    IS_TESTING = APP_ENV in {"testing", "test"} or _get_bool_env("TESTING")

    # Supabase Configuration
    SUPABASE_URL = _get_env_var("SUPABASE_URL")
    SUPABASE_KEY = _get_env_var("SUPABASE_KEY")

    # Stripe Configuration
    STRIPE_SECRET_KEY = _get_env_var("STRIPE_SECRET_KEY")
    # Upper bound for a single Stripe API request; a timeout leaves the outcome unknown
    STRIPE_REQUEST_TIMEOUT_SECONDS = float(os.environ.get("STRIPE_REQUEST_TIMEOUT_SECONDS", "30"))

    # Recurring price identifiers, one per tier/interval pair
    STRIPE_PROFESSIONAL_MONTHLY_PRICE_ID = _get_env_var("STRIPE_PROFESSIONAL_MONTHLY_PRICE_ID")
    STRIPE_PROFESSIONAL_ANNUAL_PRICE_ID = _get_env_var("STRIPE_PROFESSIONAL_ANNUAL_PRICE_ID")
    STRIPE_PREMIUM_MONTHLY_PRICE_ID = _get_env_var("STRIPE_PREMIUM_MONTHLY_PRICE_ID")
    STRIPE_PREMIUM_ANNUAL_PRICE_ID = _get_env_var("STRIPE_PREMIUM_ANNUAL_PRICE_ID")

    # Checkout requests for the same user/price inside one window share an idempotency key
    CHECKOUT_IDEMPOTENCY_WINDOW_SECONDS = int(
        os.environ.get("CHECKOUT_IDEMPOTENCY_WINDOW_SECONDS", "60")
    )

    FRONTEND_URL = _get_env_var("FRONTEND_URL", "http://localhost:3000")

    # Sentry Configuration
    SENTRY_DSN = _get_env_var("SENTRY_DSN")
    SENTRY_ENABLED = _get_bool_env("SENTRY_ENABLED", "true")
    SENTRY_ENVIRONMENT = os.environ.get("SENTRY_ENVIRONMENT", APP_ENV)
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0.1"))
    SENTRY_RELEASE = os.environ.get("SENTRY_RELEASE", "1.0.0")

    @classmethod
    def validate(cls):
        """Validate that all required environment variables are set"""
        missing_vars = []

        if not cls.SUPABASE_URL:
            missing_vars.append("SUPABASE_URL")
        if not cls.SUPABASE_KEY:
            missing_vars.append("SUPABASE_KEY")
        if not cls.STRIPE_SECRET_KEY:
            missing_vars.append("STRIPE_SECRET_KEY")

        if missing_vars:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing_vars)}\n"
                "Please create a .env file with the following variables:\n"
                "SUPABASE_URL=your_supabase_project_url\n"
                "SUPABASE_KEY=your_supabase_service_role_key\n"
                "STRIPE_SECRET_KEY=your_stripe_secret_key"
            )

        return True

    @classmethod
    def price_ids(cls) -> dict[str, str | None]:
        """Configured recurring price ids keyed by '<tier>_<interval>'"""
        return {
            "professional_monthly": cls.STRIPE_PROFESSIONAL_MONTHLY_PRICE_ID,
            "professional_annual": cls.STRIPE_PROFESSIONAL_ANNUAL_PRICE_ID,
            "premium_monthly": cls.STRIPE_PREMIUM_MONTHLY_PRICE_ID,
            "premium_annual": cls.STRIPE_PREMIUM_ANNUAL_PRICE_ID,
        }
