from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..http_utils import HttpClient, with_query_params
from ..models import FeedItem, parse_epoch_seconds


def _children(data: Any, *, url: str) -> list[Mapping[str, Any]]:
    """
    兼容两种响应结构：
    - reddit 风格 listing：{"kind": "Listing", "data": {"children": [{"kind": "t3", "data": {...}}]}}
    - 直接返回条目数组：[{...}, {...}]
    """
    if isinstance(data, list):
        return [it for it in data if isinstance(it, dict)]
    if isinstance(data, dict):
        inner = data.get("data")
        if isinstance(inner, dict) and isinstance(inner.get("children"), list):
            return [it for it in inner["children"] if isinstance(it, dict)]
    raise ValueError(f"Listing API expected listing object or list, got {type(data)}: {url}")


def _item_id(kind: str | None, it: Mapping[str, Any]) -> str:
    name = it.get("name")
    if name:
        return str(name)
    raw_id = it.get("id")
    if raw_id is None or raw_id == "":
        return ""
    if kind and not str(raw_id).startswith(f"{kind}_"):
        return f"{kind}_{raw_id}"
    return str(raw_id)


@dataclass(slots=True)
class ListingOperator:
    """
    基于 HTTP JSON 的列表访问实现（reddit 风格的 after/before/limit 分页）。

    - path 形如 "/r/python/new"，请求 {base_url}{path}{listing_suffix}
    - after/before 为空时不带该参数（表示不设边界）
    - 方向映射：Operator 的 after（只要比它更新的条目）对应 reddit 的 before=，
      Operator 的 before（只要比它更旧的条目）对应 reddit 的 after=；
      reddit 列表从新到旧排列，after= 翻向更旧的一页，before= 取更新的条目
    - 两侧边界同时给出时，按 reddit after= 取更旧的一页，再在客户端截断到 after 条目为止
    - 条目 id 取 name（fullname，如 "t3_abc"），缺失时用 "{kind}_{id}" 兜底
    """

    base_url: str
    http: HttpClient
    token: str | None = None
    listing_suffix: str = ".json"

    def _headers(self) -> Mapping[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        path = path if path.startswith("/") else "/" + path
        if self.listing_suffix and not path.endswith(self.listing_suffix):
            path = path.rstrip("/") + self.listing_suffix
        return self.base_url.rstrip("/") + path

    def scrape(self, path: str, after: str, before: str, limit: int) -> list[FeedItem]:
        url = with_query_params(
            self._url(path),
            {
                "after": before or None,
                "before": None if before else (after or None),
                "limit": str(limit) if limit else None,
                "raw_json": "1",
            },
        )
        resp = self.http.get(url, headers=self._headers())
        items: list[FeedItem] = []
        for child in _children(resp.json(), url=resp.url):
            item = self._to_item(child)
            if item is None:
                continue
            if after and item.item_id == after:
                break
            items.append(item)
        if limit:
            items = items[:limit]
        return items

    def get_item(self, handle: str) -> FeedItem:
        url = with_query_params(self._url("/api/info"), {"id": handle, "raw_json": "1"})
        resp = self.http.get(url, headers=self._headers())
        for child in _children(resp.json(), url=resp.url):
            item = self._to_item(child)
            if item is not None and item.item_id == handle:
                return item
        raise LookupError(f"item not found: {handle}")

    def _to_item(self, child: Mapping[str, Any]) -> FeedItem | None:
        kind = child.get("kind") if isinstance(child.get("data"), dict) else None
        it = child["data"] if kind is not None else child
        item_id = _item_id(str(kind) if kind else None, it)
        if not item_id:
            return None

        url = str(it.get("url") or "")
        permalink = it.get("permalink")
        if not url and isinstance(permalink, str) and permalink:
            url = self.base_url.rstrip("/") + permalink

        return FeedItem(
            item_id=item_id,
            title=str(it.get("title") or ""),
            url=url,
            author=str(it.get("author") or ""),
            created_at=parse_epoch_seconds(it.get("created_utc")),
            raw=it,
        )
