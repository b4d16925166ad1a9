"""Business services."""

from app.services.entitlements import EntitlementProvider, InMemoryEntitlements
from app.services.feed_connector import FeedConnector, FeedState, ReconnectBackoff, SeedRequest
from app.services.market_data import MarketDataService
from app.services.subscriptions import Subscriber, SubscriptionHub

__all__ = [
    "EntitlementProvider",
    "InMemoryEntitlements",
    "FeedConnector",
    "FeedState",
    "ReconnectBackoff",
    "SeedRequest",
    "MarketDataService",
    "Subscriber",
    "SubscriptionHub",
]
