from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from ..models import FeedItem
from .formatter import format_item_text


@dataclass(slots=True)
class EmailHandler:
    smtp_host: str
    smtp_port: int
    username: str
    password: str
    to_list: tuple[str, ...]
    use_tls: bool = True
    source: str = ""

    def channel(self) -> str:
        return "email"

    def build_message(self, item: FeedItem) -> EmailMessage:
        if not self.to_list:
            raise ValueError("EmailHandler.to_list is empty")

        msg = EmailMessage()
        prefix = f"[tipmon:{self.source}]" if self.source else "[tipmon]"
        msg["Subject"] = f"{prefix} {item.title or item.item_id}"
        msg["From"] = self.username
        msg["To"] = ", ".join(self.to_list)
        msg.set_content(format_item_text(item, source=self.source))
        return msg

    def deliver(self, item: FeedItem) -> None:
        msg = self.build_message(item)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=20) as client:
            if self.use_tls:
                client.starttls()
            if self.username:
                client.login(self.username, self.password)
            client.send_message(msg)
