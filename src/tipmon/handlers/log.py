from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models import FeedItem


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LogHandler:
    source: str = ""

    def channel(self) -> str:
        return "log"

    def deliver(self, item: FeedItem) -> None:
        logger.info(
            "new item: source=%s id=%s title=%r url=%s",
            self.source or "-",
            item.item_id,
            item.title,
            item.url,
        )
