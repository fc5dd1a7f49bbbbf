"""
Core module - Contains configuration, logging, errors and base components.
"""

from securedesk.core.config import SecureDeskConfig
from securedesk.core.exceptions import ConfigurationError, SecureDeskError
from securedesk.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = [
    "ConfigurationError",
    "SecureDeskConfig",
    "SecureDeskError",
    "SecureLogFilter",
    "configure_logging",
    "get_secure_logger",
]
