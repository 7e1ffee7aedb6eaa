"""
Backend Connection Manager
==========================

Decides between the live Supabase backend and the local demo store, and
builds the single repository instance the app passes around.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import streamlit as st

import config
from exceptions import ConfigurationError
from repository import DemoRepository, IncentiveRepository, RealtimeListener, SupabaseRepository

logger = logging.getLogger(__name__)


@dataclass
class BackendSettings:
    """Endpoint URL and access key for the hosted backend."""
    url: str = ""
    key: str = ""
    source: str = "none"

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.key)


def get_backend_settings() -> BackendSettings:
    """
    Get backend settings from Streamlit secrets or the environment.

    Priority:
    1. Streamlit secrets, [supabase] section with url and anon_key
    2. SUPABASE_URL / SUPABASE_ANON_KEY environment variables (.env)
    3. Empty settings (demo mode)
    """
    try:
        if hasattr(st, "secrets") and "supabase" in st.secrets:
            section = st.secrets["supabase"]
            url = section.get("url", "")
            key = section.get("anon_key", "")
            if url and key:
                logger.info("Using Supabase settings from Streamlit secrets")
                return BackendSettings(url=url, key=key, source="secrets")
    except Exception as e:
        logger.debug(f"No Streamlit secrets found: {e}")

    if config.SUPABASE_URL and config.SUPABASE_ANON_KEY:
        logger.info("Using Supabase settings from environment")
        return BackendSettings(url=config.SUPABASE_URL, key=config.SUPABASE_ANON_KEY, source="env")

    logger.info("No Supabase keys configured (demo mode)")
    return BackendSettings()


def is_demo_mode(settings: Optional[BackendSettings] = None) -> bool:
    """Check if we're running without a live backend."""
    settings = settings or get_backend_settings()
    return not settings.is_configured


def create_repository(
    settings: Optional[BackendSettings] = None,
    demo_db_path: Optional[str] = None,
) -> IncentiveRepository:
    """
    Create the repository for this process.

    Call once at application start and hand the result to SessionManager.

    Returns:
        SupabaseRepository (with a RealtimeListener) when both settings
        are present, otherwise a seeded DemoRepository
    """
    settings = settings or get_backend_settings()

    if settings.is_configured:
        from supabase import acreate_client, create_client

        try:
            client = create_client(settings.url, settings.key)
        except Exception as e:
            # supabase rejects malformed URLs and keys up front
            raise ConfigurationError(f"Invalid Supabase settings: {e}", setting_key="SUPABASE_URL") from e

        async def realtime_client():
            # Only the async client can open realtime channels
            return await acreate_client(settings.url, settings.key)

        return SupabaseRepository(client, realtime=RealtimeListener(realtime_client))

    repo = DemoRepository(demo_db_path or config.DEMO_DB_PATH)
    repo.init_db()
    repo.seed_data_if_empty()
    return repo
