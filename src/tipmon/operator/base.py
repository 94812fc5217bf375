from __future__ import annotations

from typing import Protocol

from ..models import FeedItem


class Operator(Protocol):
    """
    列表访问接口（由外部提供：HTTP、鉴权、限流都在实现内部处理）。

    约定：
    - scrape 返回 (after, before) 之间（不含边界）的条目，按从新到旧排列，最多 limit 条
    - after=X 表示只要比 X 更新的条目，before=Y 表示只要比 Y 更旧的条目
      （按列表位置，而不是具体平台查询参数的字面含义）
    - after/before 为空字符串表示该侧不设边界
    - 失败直接抛异常，由 ListingMonitor 包装为 FetchError/RepairFetchError
    """

    def scrape(self, path: str, after: str, before: str, limit: int) -> list[FeedItem]: ...

    def get_item(self, handle: str) -> FeedItem: ...
