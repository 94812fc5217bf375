from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass

from ..http_utils import HttpClient
from ..models import FeedItem
from .formatter import format_item_text


_MAX_TEXT_LEN = 500


@dataclass(slots=True)
class WebhookHandler:
    """
    群机器人 webhook 分发。

    说明：
    - 请求体：{"text": ..., "item": {...}, "timeStamp": 毫秒时间戳, "uuid": ...}
    - text 超过 500 字符会被截断；item 为 FeedItem.to_json_dict() 的完整内容
    - 响应为 JSON 且带 code 字段时，code 必须为 "0"，否则视为失败
    """

    webhook_url: str
    http: HttpClient
    source: str = ""

    def channel(self) -> str:
        return "webhook"

    def deliver(self, item: FeedItem) -> None:
        payload = self._build_payload(item)
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        resp = self.http.post(
            self.webhook_url,
            data=data,
            headers={
                "Accept-Charset": "UTF-8",
                "Content-Type": "application/json; charset=utf-8",
                "Accept": "application/json",
            },
        )
        if resp.status >= 400:
            raise RuntimeError(f"webhook failed: status={resp.status}, body={resp.body[:200]!r}")
        if not resp.body.strip():
            return

        try:
            body = resp.json()
        except ValueError as e:
            raise RuntimeError(f"webhook invalid JSON response: {resp.body[:200]!r}") from e

        if isinstance(body, dict) and "code" in body and str(body["code"]) != "0":
            raise RuntimeError(f"webhook returned error: {body!r}")

    def _build_payload(self, item: FeedItem) -> dict[str, object]:
        text = format_item_text(item, source=self.source).strip() or "-"
        if len(text) > _MAX_TEXT_LEN:
            text = text[: _MAX_TEXT_LEN - 1] + "…"
        return {
            "text": text,
            "item": item.to_json_dict(),
            "timeStamp": int(time.time() * 1000),
            "uuid": uuid.uuid4().hex,
        }
