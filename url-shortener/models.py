from dataclasses import dataclass, field
from datetime import datetime
from typing import List
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ShortURLRecord:
    original_url: str
    shortcode: str
    created_at: datetime
    expires_at: datetime
    validity_minutes: int
    is_active: bool = True
    id: str = field(default_factory=new_id)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class ClickRecord:
    timestamp: datetime
    ip: str | None
    user_agent: str | None
    referrer: str = "Direct"
    location: str = "Unknown"
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class ClickSummary:
    """Public view of a click; the client IP is left out."""
    timestamp: datetime
    referrer: str
    location: str
    user_agent: str | None


@dataclass(frozen=True)
class UrlStatistics:
    shortcode: str
    original_url: str
    created_at: datetime
    expires_at: datetime
    total_clicks: int
    clicks: List[ClickSummary]


@dataclass(frozen=True)
class UrlSummary:
    record: ShortURLRecord
    total_clicks: int
