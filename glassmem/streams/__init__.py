from .channel import TimestampedItem, Subscription, TimestampedChannel
from .buffer import RecentItemBuffer

__all__ = [
    'TimestampedItem',
    'Subscription',
    'TimestampedChannel',
    'RecentItemBuffer',
]
