from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Mapping


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_epoch_seconds(value: Any) -> datetime | None:
    """
    将列表接口中的 created_utc（秒级 epoch，可能是 float 或字符串）解析为 UTC datetime。

    无法解析时返回 None，而不是抛异常：时间只是透传的 payload，不参与 tip 计算。
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


@dataclass(frozen=True, slots=True)
class FeedItem:
    """
    列表条目：核心逻辑只读取 item_id。

    - item_id：在列表内稳定且唯一的标识（例如 reddit 的 fullname "t3_abc"），
      只能按列表位置比较先后，不能按字典序比较
    - 其余字段都是 payload，原样透传给 handler
    """

    item_id: str
    title: str = ""
    url: str = ""
    author: str = ""
    created_at: datetime | None = None
    raw: Mapping[str, Any] | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "title": self.title,
            "url": self.url,
            "author": self.author,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "raw": self.raw,
        }
