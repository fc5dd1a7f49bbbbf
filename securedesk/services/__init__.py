"""
Services module - Cross-collection read models.
"""

from securedesk.services.aggregation import (
    COUNTED_COLLECTIONS,
    AggregationService,
    CountSnapshot,
    CountSubscription,
)

__all__ = [
    "COUNTED_COLLECTIONS",
    "AggregationService",
    "CountSnapshot",
    "CountSubscription",
]
