from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .errors import DispatchError, FetchError, RepairFetchError
from .handlers.base import Handler
from .handlers.dispatch import Dispatcher
from .models import FeedItem
from .operator.base import Operator
from .tip import TipWindow


logger = logging.getLogger(__name__)


# 单页上限；需要覆盖一个轮询间隔内的全部新增。
DEFAULT_PAGE_LIMIT = 100

# 回溯校验只关心 (上一条, tip) 之间是否还有条目，取 1 条即可。
REPAIR_PAGE_LIMIT = 1


@dataclass(slots=True)
class ListingMonitor:
    """
    单个列表的轮询控制器，持有独立的 TipWindow。

    一个周期（update）内严格按顺序执行：
    - fetch_tip：以 tip.newest() 为 after 拉取最新页，计算增量并追加到窗口
    - 对增量中的每条逐个 dispatch（fire-and-forget）
    - 增量非空时 fix_tip：校验 (上一条, tip) 之间是否还有条目，必要时后退一步

    周期之间不能重叠，由调用方（Runner）保证。
    """

    operator: Operator
    handler: Handler
    path: str
    dispatcher: Dispatcher
    page_limit: int = DEFAULT_PAGE_LIMIT
    tip: TipWindow = field(default_factory=TipWindow)

    def update(self) -> list[FeedItem]:
        """
        执行一个轮询周期，返回本周期分发的新条目（从新到旧）。

        拉取失败抛 FetchError，窗口保持不变；回溯失败抛 RepairFetchError，
        但本周期已经追加与分发的增量不会回滚。
        dispatcher 已关闭时在拉取之前抛 DispatchError，窗口保持不变。
        """
        if self.dispatcher.closed:
            raise DispatchError(f"dispatcher is closed: path={self.path}", path=self.path)

        tip_before = self.tip.newest()
        items = self.fetch_tip()
        try:
            for item in items:
                self.dispatcher.dispatch(self.handler, item)
        except Exception as e:  # noqa: BLE001
            raise DispatchError(
                f"dispatch failed: path={self.path} tip={self.tip.newest()!r}: {type(e).__name__}: {e}",
                path=self.path,
            ) from e

        if items:
            self.fix_tip()

        logger.debug(
            "update done: path=%s tip_before=%r tip_after=%r delivered=%d tip_size=%d",
            self.path,
            tip_before,
            self.tip.newest(),
            len(items),
            len(self.tip),
        )
        return items

    def fetch_tip(self) -> list[FeedItem]:
        """
        拉取 tip 之后的新条目并追加到窗口。

        窗口处于哨兵状态时只播种不分发：把这一页的 id 写入窗口后返回空列表，
        避免首次运行把整个历史推给下游。
        """
        after = self.tip.newest()
        try:
            items = self.operator.scrape(self.path, after, "", self.page_limit)
        except Exception as e:  # noqa: BLE001
            raise FetchError(
                f"fetch newest page failed: path={self.path} after={after!r}: {type(e).__name__}: {e}",
                path=self.path,
            ) from e

        items = list(items or [])
        seeding = self.tip.is_seeding
        # 列表按从新到旧返回，窗口按从旧到新存放。
        self.tip.extend_oldest_first(item.item_id for item in reversed(items))

        if seeding:
            if items:
                logger.info("tip seeded: path=%s items=%d newest=%r", self.path, len(items), self.tip.newest())
            return []
        return items

    def fix_tip(self) -> None:
        """
        确认 tip 与上一个已确认位置在列表历史中相邻。

        请求 (上一条, tip) 之间的条目（before=tip，after=窗口中倒数第二条）：
        - 回溯页为空：tip 与真实历史相邻，窗口不变
        - 回溯页非空：tip 跳过了列表中的条目，去掉最新的一条（无论回溯页有几条）；
          下一个周期的 fetch_tip 会重新发现被跳过的条目
        """
        ids = self.tip.snapshot()
        before = ids[-1]
        after = ids[-2] if len(ids) > 1 else ""
        try:
            items = self.operator.scrape(self.path, after, before, REPAIR_PAGE_LIMIT)
        except Exception as e:  # noqa: BLE001
            raise RepairFetchError(
                f"repair fetch failed: path={self.path} after={after!r} before={before!r}: {type(e).__name__}: {e}",
                path=self.path,
            ) from e

        if not items:
            return

        self.tip.shave_newest()
        logger.info("tip retreated: path=%s from=%r to=%r", self.path, before, self.tip.newest())
