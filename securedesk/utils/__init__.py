"""
Utils module - Utility functions and helpers.
"""

from securedesk.utils.ids import IdentifierGenerator, UuidGenerator
from securedesk.utils.timeutil import utc_now_iso

__all__ = [
    "IdentifierGenerator",
    "UuidGenerator",
    "utc_now_iso",
]
