"""
MarketDesk Core
===============

Core utilities and shared functionality for MarketDesk modules.
"""

from .config import Config, get_config_value
from .database import Database, Pagination, Page, get_db
from .logging_service import LoggingService, db_log
from .results import ActionResult, action, respond

__all__ = [
    'Config', 'get_config_value', 'Database', 'Pagination', 'Page', 'get_db',
    'LoggingService', 'db_log', 'ActionResult', 'action', 'respond',
]
