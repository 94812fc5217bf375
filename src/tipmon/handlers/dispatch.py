from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from ..models import FeedItem
from .base import Handler


logger = logging.getLogger(__name__)


class Dispatcher:
    """
    fire-and-forget 分发：每条新条目作为一个独立任务提交到线程池。

    - dispatch 立即返回，不阻塞轮询周期，也不向周期回传结果
    - handler 抛出的异常在任务完成回调里记录日志，不会传播
    - 多个 dispatch 之间不保证执行顺序
    - pending 为已提交但尚未完成的任务数；线程池队列本身无上限，
      积压达到 backlog_warn_threshold 时记录一次 warning，回落后重新计数
    """

    def __init__(self, *, max_workers: int = 4, backlog_warn_threshold: int = 100) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="tipmon-dispatch")
        self._backlog_warn_threshold = max(1, backlog_warn_threshold)
        self._lock = threading.Lock()
        self._pending = 0
        self._backlog_warned = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def backlog_warn_threshold(self) -> int:
        return self._backlog_warn_threshold

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def dispatch(self, handler: Handler, item: FeedItem) -> None:
        future = self._executor.submit(handler.deliver, item)
        with self._lock:
            self._pending += 1
            pending = self._pending
            warn = pending >= self._backlog_warn_threshold and not self._backlog_warned
            if warn:
                self._backlog_warned = True
        if warn:
            logger.warning(
                "dispatch backlog high: pending=%d threshold=%d channel=%s",
                pending,
                self._backlog_warn_threshold,
                handler.channel(),
            )
        future.add_done_callback(lambda f: self._on_done(f, handler, item))

    def shutdown(self, *, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)

    def _on_done(self, future: Future[None], handler: Handler, item: FeedItem) -> None:
        with self._lock:
            self._pending -= 1
            if self._pending < self._backlog_warn_threshold:
                self._backlog_warned = False

        if future.cancelled():
            logger.warning("dispatch cancelled: channel=%s item_id=%s", handler.channel(), item.item_id)
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error(
            "dispatch failed: channel=%s handler_type=%s item_id=%s",
            handler.channel(),
            type(handler).__name__,
            item.item_id,
            exc_info=exc,
        )


@dataclass(slots=True)
class FanoutHandler:
    """
    组合多个 handler：依次投递，单个渠道失败只记录日志，不影响其它渠道。
    """

    handlers: tuple[Handler, ...]

    def channel(self) -> str:
        return "+".join(h.channel() for h in self.handlers) or "none"

    def deliver(self, item: FeedItem) -> None:
        for handler in self.handlers:
            try:
                handler.deliver(item)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "deliver failed: channel=%s handler_type=%s item_id=%s url=%s",
                    handler.channel(),
                    type(handler).__name__,
                    item.item_id,
                    item.url,
                )
