"""Repository abstractions for database interactions."""

from .event_repository import EventRepository
from .identity_repository import IdentityRepository
from .market_repository import MarketRepository

__all__ = [
    "EventRepository",
    "IdentityRepository",
    "MarketRepository",
]
