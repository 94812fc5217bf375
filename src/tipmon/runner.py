from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from .config import AppConfig
from .handlers.base import Handler
from .handlers.dispatch import Dispatcher, FanoutHandler
from .handlers.email import EmailHandler
from .handlers.log import LogHandler
from .handlers.webhook import WebhookHandler
from .http_utils import HttpClient
from .monitor import ListingMonitor
from .operator.listing import ListingOperator
from .tip import TipWindow


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class MonitorRunReport:
    name: str
    path: str
    tip_before: str
    tip_after: str
    tip_size: int
    delivered: int
    error: str | None
    error_phase: str | None
    duration_ms: int


@dataclass(slots=True)
class RunOnceReport:
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    monitors: tuple[MonitorRunReport, ...]
    delivered: int
    monitor_errors: int
    dispatch_backlog: int


@dataclass(slots=True)
class Runner:
    """
    核心执行器：依次对每个 monitor 执行一个轮询周期。

    Runner 是监控周期的“调用方”：
    - monitor 抛出的 FetchError/RepairFetchError/DispatchError 在这里捕获、记录并写入报告
    - 不做周期内重试；下一个周期会从未改变（或已部分推进）的 tip 继续
    - 每个 monitor 拥有独立的 tip 窗口，互不共享可变状态
    """

    monitors: tuple[tuple[str, ListingMonitor], ...]
    dispatcher: Dispatcher

    def run_once(self) -> RunOnceReport:
        started_at = _utc_now()
        start_t = time.monotonic()

        reports: list[MonitorRunReport] = []
        delivered_total = 0
        monitor_errors = 0

        for name, monitor in self.monitors:
            monitor_start_t = time.monotonic()
            tip_before = monitor.tip.newest()
            error: str | None = None
            error_phase: str | None = None
            delivered = 0

            try:
                delivered = len(monitor.update())
            except Exception as e:  # noqa: BLE001
                error = f"{type(e).__name__}: {e}"
                error_phase = getattr(e, "phase", None)
                monitor_errors += 1
                logger.exception(
                    "monitor update failed: name=%s path=%s phase=%s tip=%r",
                    name,
                    monitor.path,
                    error_phase or "-",
                    tip_before,
                )

            delivered_total += delivered
            reports.append(
                MonitorRunReport(
                    name=name,
                    path=monitor.path,
                    tip_before=tip_before,
                    tip_after=monitor.tip.newest(),
                    tip_size=len(monitor.tip),
                    delivered=delivered,
                    error=error,
                    error_phase=error_phase,
                    duration_ms=int((time.monotonic() - monitor_start_t) * 1000),
                )
            )

        return RunOnceReport(
            started_at=started_at,
            finished_at=_utc_now(),
            duration_ms=int((time.monotonic() - start_t) * 1000),
            monitors=tuple(reports),
            delivered=delivered_total,
            monitor_errors=monitor_errors,
            dispatch_backlog=self.dispatcher.pending,
        )

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)


def _build_handlers(config: AppConfig, *, http: HttpClient, source: str) -> tuple[Handler, ...]:
    handlers: list[Handler] = []
    if config.log_items:
        handlers.append(LogHandler(source=source))

    if config.webhook:
        webhook_url = config.resolve_env(config.webhook.webhook_env)
        if webhook_url:
            handlers.append(WebhookHandler(webhook_url=webhook_url, http=http, source=source))

    if config.email and config.email.smtp_host and config.email.to_list:
        handlers.append(
            EmailHandler(
                smtp_host=config.email.smtp_host,
                smtp_port=config.email.smtp_port,
                username=config.resolve_env(config.email.user_env) or "",
                password=config.resolve_env(config.email.password_env) or "",
                to_list=config.email.to_list,
                use_tls=config.email.use_tls,
                source=source,
            )
        )
    return tuple(handlers)


def build_runner(config: AppConfig) -> Runner:
    """
    根据配置构建可运行的 Runner。

    - 统一在这里做“配置 -> 实例”的装配，ListingMonitor 内只关注 tip 算法
    - 对 secret/token 只通过环境变量读取，避免落盘
    - 每个 monitor 一个 TipWindow；tip 不持久化，进程重启后重新播种
    """
    http = HttpClient(
        timeout_seconds=config.operator.timeout_seconds,
        user_agent=config.operator.user_agent,
        max_retries=config.operator.max_retries,
    )
    operator = ListingOperator(
        base_url=config.operator.base_url,
        http=http,
        token=config.resolve_env(config.operator.token_env),
    )
    dispatcher = Dispatcher(
        max_workers=config.dispatch_workers,
        backlog_warn_threshold=config.dispatch_backlog_warn,
    )

    monitors: list[tuple[str, ListingMonitor]] = []
    for m in config.monitors:
        monitors.append(
            (
                m.name,
                ListingMonitor(
                    operator=operator,
                    handler=FanoutHandler(handlers=_build_handlers(config, http=http, source=m.name)),
                    path=m.path,
                    dispatcher=dispatcher,
                    page_limit=m.page_limit,
                    tip=TipWindow(max_size=m.max_tip_size),
                ),
            )
        )

    return Runner(monitors=tuple(monitors), dispatcher=dispatcher)
