from __future__ import annotations

from ..models import FeedItem


def format_item_text(item: FeedItem, *, source: str = "") -> str:
    """
    统一的文本消息格式，兼容 IM webhook 与邮件正文。
    """
    created = item.created_at.isoformat() if item.created_at else "-"
    lines = ["Listing Tip Monitor"]
    if source:
        lines.append(f"source: {source}")
    lines.extend(
        [
            f"id: {item.item_id}",
            f"title: {item.title or '-'}",
            f"author: {item.author or '-'}",
            f"url: {item.url or '-'}",
            f"created_at: {created}",
        ]
    )
    return "\n".join(lines)
