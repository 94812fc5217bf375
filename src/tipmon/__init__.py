"""
Listing Tip Monitor (tipmon)

通过轮询方式增量监控外部分页列表（例如 subreddit 的 new 列表），
使用有界的 tip 窗口做去重与自修复，并将每条新条目分发给下游 handler。
"""

from .errors import DispatchError, FetchError, MonitorError, RepairFetchError
from .models import FeedItem
from .monitor import ListingMonitor
from .tip import TipWindow

__all__ = [
    "DispatchError",
    "FeedItem",
    "FetchError",
    "ListingMonitor",
    "MonitorError",
    "RepairFetchError",
    "TipWindow",
]
