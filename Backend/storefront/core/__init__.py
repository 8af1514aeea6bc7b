"""
Core module - configuration, database sessions, and response formatting.
"""
from .config import ConfigurationError, Settings, get_settings, settings_from_request
from .db import Base, create_engine, create_sessionmaker, get_session, sessionmaker_from_request
from .responses import ErrorCodes, error_response, register_exception_handlers

__all__ = [
    # Config
    "ConfigurationError",
    "Settings",
    "get_settings",
    "settings_from_request",
    # Database
    "Base",
    "create_engine",
    "create_sessionmaker",
    "get_session",
    "sessionmaker_from_request",
    # Responses
    "ErrorCodes",
    "error_response",
    "register_exception_handlers",
]
