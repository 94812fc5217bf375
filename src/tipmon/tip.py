from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator


SENTINEL = ""

# 需要明显大于两次轮询之间可能出现的最大新增量（单页上限为 100）。
DEFAULT_MAX_TIP_SIZE = 200


class TipWindow:
    """
    tip 窗口：最近分发过的条目 id，按从旧到新排列。

    不变量：
    - 长度始终 >= 1；从未见过真实条目时只包含一个空字符串哨兵
    - 长度不超过 max_size；满了之后每次 append 都会先淘汰最旧的一条
    - 只由所属的 ListingMonitor 在单个轮询线程内修改
    """

    __slots__ = ("_ids", "_max_size")

    def __init__(self, max_size: int = DEFAULT_MAX_TIP_SIZE) -> None:
        if max_size < 1:
            raise ValueError(f"TipWindow.max_size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._ids: deque[str] = deque([SENTINEL], maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def is_seeding(self) -> bool:
        """窗口处于仅含哨兵的初始状态（首次运行，或回退到底后重新播种）。"""
        return len(self._ids) == 1 and self._ids[0] == SENTINEL

    def append(self, item_id: str) -> None:
        self._ids.append(item_id)

    def extend_oldest_first(self, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            self._ids.append(item_id)

    def newest(self) -> str:
        return self._ids[-1]

    def shave_newest(self) -> None:
        """
        去掉最新的一条，使轮询游标后退一步。

        只剩一条时重置为哨兵，因此反复调用会收敛到 [""]，不会变空也不会报错。
        """
        if len(self._ids) <= 1:
            self._ids.clear()
            self._ids.append(SENTINEL)
            return
        self._ids.pop()

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._ids))

    def __repr__(self) -> str:
        return f"TipWindow(max_size={self._max_size}, ids={list(self._ids)!r})"
