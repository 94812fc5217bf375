from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .monitor import DEFAULT_PAGE_LIMIT
from .tip import DEFAULT_MAX_TIP_SIZE


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"Expected object at {where}, got {type(value)}")
    return value


def _get_bool(d: Mapping[str, Any], key: str, default: bool) -> bool:
    v = d.get(key, default)
    return bool(v)


def _get_int(d: Mapping[str, Any], key: str, default: int) -> int:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return int(v)
    except Exception:
        return default


def _get_float(d: Mapping[str, Any], key: str, default: float) -> float:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return float(v)
    except Exception:
        return default


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_str_list(d: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    v = d.get(key, default)
    if v is None:
        return list(default)
    if isinstance(v, list):
        return [str(x) for x in v]
    return list(default)


@dataclass(frozen=True, slots=True)
class OperatorConfig:
    """
    列表访问配置。

    base_url:
      - 列表 API 根地址，例如 https://www.reddit.com
    token_env:
      - Bearer Token 的环境变量名（可选）
    """

    base_url: str
    token_env: str | None = None
    user_agent: str = "tipmon/0"
    timeout_seconds: float = 20.0
    max_retries: int = 3


@dataclass(frozen=True, slots=True)
class MonitorConfig:
    """
    单个列表监控配置。每个 monitor 拥有独立的 tip 窗口。

    path:
      - 列表路径，例如 "/r/python/new"
    page_limit:
      - 每次拉取最新页的条数上限
    max_tip_size:
      - tip 窗口容量，应明显大于两次轮询之间的最大新增量
    """

    name: str
    path: str
    page_limit: int = DEFAULT_PAGE_LIMIT
    max_tip_size: int = DEFAULT_MAX_TIP_SIZE


@dataclass(frozen=True, slots=True)
class WebhookNotifyConfig:
    webhook_env: str


@dataclass(frozen=True, slots=True)
class EmailNotifyConfig:
    """
    邮件分发配置（SMTP）。
    """

    smtp_host: str
    smtp_port: int
    user_env: str
    password_env: str
    to_list: tuple[str, ...]
    use_tls: bool = True


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    poll_interval_seconds:
      - 轮询间隔（daemon 模式下生效）
    dispatch_workers:
      - 分发线程池大小
    dispatch_backlog_warn:
      - 分发积压（已提交未完成）达到该值时记录 warning
    """

    poll_interval_seconds: int
    dispatch_workers: int
    dispatch_backlog_warn: int
    operator: OperatorConfig
    monitors: tuple[MonitorConfig, ...]
    log_items: bool
    webhook: WebhookNotifyConfig | None
    email: EmailNotifyConfig | None

    def resolve_env(self, env_name: str | None) -> str | None:
        if not env_name:
            return None
        return os.environ.get(env_name)


def _load_monitors(raw: Any) -> tuple[MonitorConfig, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError(f"Expected array at $.monitors, got {type(raw)}")

    monitors: list[MonitorConfig] = []
    for i, it in enumerate(raw):
        m = _require_dict(it, where=f"$.monitors[{i}]")
        path = _get_str(m, "path", None)
        if not path:
            raise ValueError(f"Missing path at $.monitors[{i}]")
        max_tip_size = _get_int(m, "max_tip_size", DEFAULT_MAX_TIP_SIZE)
        if max_tip_size < 1:
            raise ValueError(f"max_tip_size must be >= 1 at $.monitors[{i}], got {max_tip_size}")
        monitors.append(
            MonitorConfig(
                name=_get_str(m, "name", None) or path,
                path=path,
                page_limit=max(1, _get_int(m, "page_limit", DEFAULT_PAGE_LIMIT)),
                max_tip_size=max_tip_size,
            )
        )
    return tuple(monitors)


def load_config(config_path: str) -> AppConfig:
    """
    使用 JSON 作为配置落地形式，避免引入第三方 YAML 解析依赖。

    JSON 顶层结构（示意）：
    {
      "poll_interval_seconds": 30,
      "dispatch_workers": 4,
      "dispatch_backlog_warn": 100,
      "operator": { "base_url": "https://www.reddit.com", "token_env": "REDDIT_TOKEN" },
      "monitors": [ { "name": "python-new", "path": "/r/python/new" } ],
      "notify": { "log": true, "webhook": { ... }, "email": { ... } }
    }
    """
    with open(config_path, "rb") as f:
        raw = json.loads(f.read().decode("utf-8"))

    root = _require_dict(raw, where="$")
    poll_interval_seconds = _get_int(root, "poll_interval_seconds", 30)
    dispatch_workers = max(1, _get_int(root, "dispatch_workers", 4))
    dispatch_backlog_warn = max(1, _get_int(root, "dispatch_backlog_warn", 100))

    op = _require_dict(root.get("operator", {}), where="$.operator")
    operator_cfg = OperatorConfig(
        base_url=str(op.get("base_url") or "https://www.reddit.com"),
        token_env=_get_str(op, "token_env", None),
        user_agent=str(op.get("user_agent") or "tipmon/0"),
        timeout_seconds=_get_float(op, "timeout_seconds", 20.0),
        max_retries=max(0, _get_int(op, "max_retries", 3)),
    )

    monitors = _load_monitors(root.get("monitors"))

    notify = _require_dict(root.get("notify", {}), where="$.notify")

    webhook_cfg: WebhookNotifyConfig | None = None
    if isinstance(notify.get("webhook"), dict):
        wh = _require_dict(notify["webhook"], where="$.notify.webhook")
        webhook_cfg = WebhookNotifyConfig(webhook_env=str(wh.get("webhook_env") or "TIPMON_WEBHOOK_URL"))

    email_cfg: EmailNotifyConfig | None = None
    if isinstance(notify.get("email"), dict):
        em = _require_dict(notify["email"], where="$.notify.email")
        email_cfg = EmailNotifyConfig(
            smtp_host=str(em.get("smtp_host") or ""),
            smtp_port=_get_int(em, "smtp_port", 587),
            user_env=str(em.get("user_env") or ""),
            password_env=str(em.get("password_env") or ""),
            to_list=tuple(_get_str_list(em, "to_list", [])),
            use_tls=_get_bool(em, "use_tls", True),
        )

    return AppConfig(
        poll_interval_seconds=poll_interval_seconds,
        dispatch_workers=dispatch_workers,
        dispatch_backlog_warn=dispatch_backlog_warn,
        operator=operator_cfg,
        monitors=monitors,
        log_items=_get_bool(notify, "log", True),
        webhook=webhook_cfg,
        email=email_cfg,
    )
