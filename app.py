"""
Application startup for the Incentive Dashboard.

Builds the one repository for the process, wraps it in a SessionManager
and performs the initial load. A presentation layer calls start() once
and reads session.state afterwards; stop() tears the realtime feed down.
"""

import logging
from typing import Optional

from backend_connection import BackendSettings, create_repository, get_backend_settings
from config import LOG_FILE, LOG_LEVEL
from models import TierConfig
from repository import IncentiveRepository
from session_manager import SessionManager
from utils import setup_logging

logger = logging.getLogger(__name__)


def build_session(
    repo: Optional[IncentiveRepository] = None,
    settings: Optional[BackendSettings] = None,
    tier_config: Optional[TierConfig] = None,
) -> SessionManager:
    """Create a SessionManager around an explicit or freshly built repository."""
    if repo is None:
        repo = create_repository(settings or get_backend_settings())
    return SessionManager(repo, tier_config=tier_config)


def start(
    repo: Optional[IncentiveRepository] = None,
    tier_config: Optional[TierConfig] = None,
    realtime: bool = True,
    configure_logging: bool = True,
) -> SessionManager:
    """
    Start a dashboard session.

    Args:
        repo: Injected repository; built from settings when omitted
        tier_config: Tier mapping; defaults to TierConfig()
        realtime: Subscribe to the change feed after the first load
        configure_logging: Install console/file handlers

    Returns:
        A loaded SessionManager. A failed first load leaves the state
        empty with state.error set.
    """
    if configure_logging:
        setup_logging(LOG_LEVEL, LOG_FILE)

    session = build_session(repo=repo, tier_config=tier_config)
    mode = "demo" if session.state.demo_mode else "live"
    logger.info(f"Starting incentive dashboard session ({mode} mode)")

    session.load()
    if realtime:
        session.start_realtime()
    return session
