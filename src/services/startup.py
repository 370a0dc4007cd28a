"""
Application lifespan: validates configuration and warms the datastore client
on startup, closes pooled connections on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from src.config import Config
from src.config.supabase_config import cleanup_supabase_client, get_supabase_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """
    Application lifespan manager for startup and shutdown events
    """
    Config.validate()

    try:
        get_supabase_client()
        logger.info("Supabase client initialized")
    except RuntimeError as e:
        # Degraded start; get_supabase_client retries once its error cache expires
        logger.error(f"Starting without a Supabase connection: {e}")

    yield

    logger.info("Shutting down billing service")
    cleanup_supabase_client()
