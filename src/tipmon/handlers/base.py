from __future__ import annotations

from typing import Protocol

from ..models import FeedItem


class Handler(Protocol):
    """
    分发接口：把一条新条目交给下游消费逻辑。

    约定：
    - deliver 失败抛异常，由 Dispatcher/FanoutHandler 统一捕获并记录日志
    - 返回值不会被轮询周期观察到；调用方不等待结果
    - channel() 用于日志与故障定位
    """

    def channel(self) -> str: ...

    def deliver(self, item: FeedItem) -> None: ...
