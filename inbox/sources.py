from datetime import datetime
from typing import Optional, Protocol

from pydantic import BaseModel


class RemoteMessage(BaseModel):
    message_id: str
    sender: Optional[str] = None
    subject: Optional[str] = None
    body_text: str = ""
    received_at: Optional[datetime] = None


class MessageSource(Protocol):
    """Remote mailbox collaborator. Connection and credentials are its own concern."""

    def fetch(self, query: str, max_count: int) -> list[RemoteMessage]: ...


class StaticMessageSource:
    """Serves a fixed list of messages, newest first, ignoring the query."""

    def __init__(self, messages: Optional[list[RemoteMessage]] = None):
        self.messages = list(messages or [])
        self.queries: list[tuple[str, int]] = []

    def fetch(self, query: str, max_count: int) -> list[RemoteMessage]:
        self.queries.append((query, max_count))
        return self.messages[:max_count]
