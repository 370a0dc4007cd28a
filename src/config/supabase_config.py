import logging
import time

import httpx
import sentry_sdk
from supabase import Client, create_client
from supabase.client import ClientOptions

from src.config.config import Config

logger = logging.getLogger(__name__)

_supabase_client: Client | None = None
_last_error: Exception | None = None
_last_error_time: float = 0
ERROR_CACHE_TTL = 60.0  # Retry initialization after 60 seconds

_HTTP2_ERROR_INDICATORS = (
    "streaminputs.send_headers",
    "streaminputs.recv_data",
    "connectioninputs.recv_data",
    "connectionstate.closed",
    "in state connectionstate",
    "stream closed",
    "connection reset by peer",
    "goaway",
    "h2_error",
    "http2 error",
)


def get_supabase_client() -> Client:
    """
    Return the process-wide Supabase client, creating it on first use.

    A failed initialization is cached for ERROR_CACHE_TTL seconds so that a
    misconfigured datastore does not get hammered by every request.
    """
    global _supabase_client, _last_error, _last_error_time

    if _supabase_client is not None:
        return _supabase_client

    if _last_error is not None:
        time_since_error = time.time() - _last_error_time
        if time_since_error < ERROR_CACHE_TTL:
            retry_in = int(ERROR_CACHE_TTL - time_since_error)
            raise RuntimeError(
                f"Supabase unavailable (retry in {retry_in}s): {_last_error}"
            ) from _last_error
        logger.info("Error cache expired, retrying Supabase initialization...")
        _last_error = None
        _last_error_time = 0

    try:
        Config.validate()

        if not Config.SUPABASE_URL.startswith(("http://", "https://")):
            raise RuntimeError(
                f"SUPABASE_URL must start with 'http://' or 'https://'. "
                f"Current value: '{Config.SUPABASE_URL}'"
            )

        postgrest_base_url = f"{Config.SUPABASE_URL}/rest/v1"

        httpx_client = httpx.Client(
            base_url=postgrest_base_url,
            headers={
                "apikey": Config.SUPABASE_KEY,
                "Authorization": f"Bearer {Config.SUPABASE_KEY}",
            },
            timeout=httpx.Timeout(30.0, connect=10.0),
            limits=httpx.Limits(
                max_connections=50,
                max_keepalive_connections=20,
                keepalive_expiry=60.0,
            ),
            http2=True,
        )

        _supabase_client = create_client(
            supabase_url=Config.SUPABASE_URL,
            supabase_key=Config.SUPABASE_KEY,
            options=ClientOptions(
                postgrest_client_timeout=30,
                schema="public",
                headers={"X-Client-Info": "client-comms-billing/1.0"},
            ),
        )

        # Route PostgREST traffic through the pooled HTTP/2 client
        if hasattr(_supabase_client, "postgrest") and hasattr(_supabase_client.postgrest, "session"):
            _supabase_client.postgrest.session = httpx_client
            logger.info(
                "Configured Supabase client with pooled HTTP/2 connections (base_url: %s)",
                postgrest_base_url,
            )

        return _supabase_client

    except Exception as e:
        _last_error = e
        _last_error_time = time.time()

        logger.error(
            f"Failed to initialize Supabase client: {type(e).__name__}: {e}",
            exc_info=True,
        )

        with sentry_sdk.push_scope() as scope:
            scope.set_context(
                "supabase_config",
                {
                    "supabase_url_set": bool(Config.SUPABASE_URL),
                    "supabase_key_set": bool(Config.SUPABASE_KEY),
                    "error_type": type(e).__name__,
                },
            )
            scope.set_tag("component", "supabase_client")
            sentry_sdk.capture_exception(e)

        raise RuntimeError(f"Supabase client initialization failed: {e}") from e


def reset_supabase_client() -> bool:
    """
    Drop the cached client so the next call builds a fresh connection pool.

    Returns:
        bool: True if a cached client was reset, False if none was cached
    """
    global _supabase_client, _last_error, _last_error_time

    if _supabase_client is None:
        return False

    try:
        session = getattr(getattr(_supabase_client, "postgrest", None), "session", None)
        if session is not None and hasattr(session, "close"):
            session.close()
    except Exception as close_error:
        logger.debug(f"Error closing httpx client during reset: {close_error}")

    _supabase_client = None
    _last_error = None
    _last_error_time = 0
    logger.info("Supabase client reset - next request will create fresh connection")
    return True


def cleanup_supabase_client() -> None:
    """Close pooled connections on application shutdown"""
    if reset_supabase_client():
        logger.info("Supabase client cleanup completed")


def is_http2_protocol_error(error: Exception) -> bool:
    """
    Check if an exception is an HTTP/2 protocol error that requires connection reset.

    Args:
        error: The exception to check

    Returns:
        bool: True if this is an HTTP/2 protocol error requiring reset
    """
    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    if "protocolerror" in error_type:
        return True

    if any(indicator in error_str for indicator in _HTTP2_ERROR_INDICATORS):
        return True

    if "invalid input" in error_str and ("state" in error_str or "inputs" in error_str):
        return True

    return "connection closed" in error_str and ("http2" in error_str or "h2" in error_str)


def execute_with_retry(operation, max_retries: int = 2, operation_name: str = "database operation"):
    """
    Execute a database operation with automatic retry on HTTP/2 protocol errors.

    Args:
        operation: A callable that performs the database operation.
                   It receives the Supabase client as its only argument.
        max_retries: Maximum number of retry attempts (default: 2)
        operation_name: Name of the operation for logging purposes

    Returns:
        The result of the operation

    Example:
        def fetch_record(client):
            return client.table("subscriptions").select("*").eq("user_id", user_id).execute()

        result = execute_with_retry(fetch_record, operation_name="get_subscription")
    """
    last_error = None

    for attempt in range(max_retries + 1):
        try:
            client = get_supabase_client()
            return operation(client)
        except Exception as e:
            last_error = e

            if not is_http2_protocol_error(e):
                raise

            if attempt < max_retries:
                logger.warning(
                    f"HTTP/2 protocol error in {operation_name} "
                    f"(attempt {attempt + 1}/{max_retries + 1}): {e}. Resetting client and retrying..."
                )
                reset_supabase_client()
                time.sleep(0.1)
                continue

            logger.error(
                f"HTTP/2 protocol error in {operation_name} after {max_retries + 1} attempts: {e}"
            )
            raise

    raise last_error if last_error else RuntimeError(f"{operation_name} failed with no error captured")
