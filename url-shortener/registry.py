"""In-memory short URL registry and click tracking.

``ShortUrlStore`` is the only object the HTTP layer talks to. It owns the
shortcode -> record map and the shortcode -> clicks map and guards both
with one lock, since FastAPI runs sync handlers on a thread pool.
"""
import random
import threading
from typing import Callable, Dict, List, Optional

from middleware.custom_logger import Audit, default_audit
from models import ClickRecord, ClickSummary, ShortURLRecord, UrlStatistics, UrlSummary
from utils import base62, iso_z, mins_from, utc_now, valid_shortcode

DEFAULT_LENGTH = 6
FALLBACK_LENGTH = 8
MAX_ATTEMPTS = 100
DEFAULT_VALIDITY_MIN = 30


class ShortcodeError(ValueError):
    pass


class InvalidShortcodeFormat(ShortcodeError):
    def __init__(self, shortcode):
        super().__init__("Invalid shortcode format. Use alphanumeric characters, 3-20 length.")
        self.shortcode = shortcode


class ShortcodeAlreadyExists(ShortcodeError):
    def __init__(self, shortcode: str):
        super().__init__("Shortcode already exists. Please choose a different one.")
        self.shortcode = shortcode


class ShortcodeGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.last_attempts = 0

    def generate(self, length: int = DEFAULT_LENGTH) -> str:
        return base62(length, self.rng)

    def generate_unique(self, exists: Callable[[str], bool]) -> str:
        """Retry at the default length, then keep going at the fallback length."""
        attempts = 0
        while True:
            attempts += 1
            length = DEFAULT_LENGTH if attempts <= MAX_ATTEMPTS else FALLBACK_LENGTH
            code = self.generate(length)
            if not exists(code):
                self.last_attempts = attempts
                return code


class UrlRegistry:
    def __init__(
        self,
        urls: Dict[str, ShortURLRecord],
        clicks: Dict[str, List[ClickRecord]],
        generator: ShortcodeGenerator,
        clock: Callable,
        audit: Audit = default_audit,
    ):
        self.urls = urls
        self.clicks = clicks
        self.generator = generator
        self.clock = clock
        self.audit = audit

    @staticmethod
    def is_valid_shortcode(code) -> bool:
        return valid_shortcode(code)

    def exists(self, code: str) -> bool:
        return code in self.urls

    def create(self, original_url: str, validity_minutes: int = DEFAULT_VALIDITY_MIN,
               custom_shortcode: Optional[str] = None) -> ShortURLRecord:
        if custom_shortcode:
            if not self.is_valid_shortcode(custom_shortcode):
                self.audit.event("short_create_failed", level="warn", shortcode=custom_shortcode,
                                 reason="invalid_format")
                raise InvalidShortcodeFormat(custom_shortcode)
            if self.exists(custom_shortcode):
                self.audit.event("shortcode_collision", level="warn", shortcode=custom_shortcode)
                raise ShortcodeAlreadyExists(custom_shortcode)
            code = custom_shortcode
        else:
            code = self.generator.generate_unique(self.exists)
            self.audit.event("shortcode_generated", shortcode=code, attempts=self.generator.last_attempts)

        now = self.clock()
        record = ShortURLRecord(
            original_url=original_url,
            shortcode=code,
            created_at=now,
            expires_at=mins_from(now, validity_minutes),
            validity_minutes=validity_minutes,
        )
        self.urls[code] = record
        self.clicks[code] = []
        self.audit.event("short_created", shortcode=code, long_url=original_url,
                         validity=validity_minutes, expiry=iso_z(record.expires_at))
        return record

    def resolve(self, code: str) -> Optional[ShortURLRecord]:
        record = self.urls.get(code)
        if record is None:
            return None
        if record.is_expired(self.clock()):
            self.audit.event("redirect_expired", shortcode=code, expiry=iso_z(record.expires_at))
            return None
        return record

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [code for code, record in self.urls.items() if record.is_expired(now)]
        for code in expired:
            del self.urls[code]
            self.clicks.pop(code, None)
        if expired:
            self.audit.event("expired_cleaned", count=len(expired))
        return len(expired)


class ClickTracker:
    def __init__(self, urls: Dict[str, ShortURLRecord], clicks: Dict[str, List[ClickRecord]],
                 clock: Callable, audit: Audit = default_audit):
        self.urls = urls
        self.clicks = clicks
        self.clock = clock
        self.audit = audit

    def record(self, shortcode: str, ip: Optional[str] = None, user_agent: Optional[str] = None,
               referrer: Optional[str] = None, location: Optional[str] = None) -> ClickRecord:
        click = ClickRecord(
            timestamp=self.clock(),
            ip=ip,
            user_agent=user_agent,
            referrer=referrer or "Direct",
            location=location or "Unknown",
        )
        self.clicks.setdefault(shortcode, []).append(click)
        self.audit.event("click_recorded", shortcode=shortcode, ip=ip, location=click.location)
        return click

    def _visible(self, record: ShortURLRecord, include_expired: bool, now) -> bool:
        return include_expired or not record.is_expired(now)

    def statistics_for(self, shortcode: str, include_expired: bool = True) -> Optional[UrlStatistics]:
        record = self.urls.get(shortcode)
        if record is None or not self._visible(record, include_expired, self.clock()):
            return None
        clicks = self.clicks.get(shortcode, [])
        return UrlStatistics(
            shortcode=shortcode,
            original_url=record.original_url,
            created_at=record.created_at,
            expires_at=record.expires_at,
            total_clicks=len(clicks),
            clicks=[ClickSummary(c.timestamp, c.referrer, c.location, c.user_agent) for c in clicks],
        )

    def list_all(self, include_expired: bool = True) -> List[UrlSummary]:
        now = self.clock()
        return [
            UrlSummary(record=record, total_clicks=len(self.clicks.get(code, [])))
            for code, record in self.urls.items()
            if self._visible(record, include_expired, now)
        ]


class ShortUrlStore:
    """Facade over the registry and click tracker; construct one per app."""

    def __init__(self, clock: Callable = utc_now, generator: Optional[ShortcodeGenerator] = None,
                 audit: Audit = default_audit):
        self._urls: Dict[str, ShortURLRecord] = {}
        self._clicks: Dict[str, List[ClickRecord]] = {}
        self._lock = threading.RLock()
        self.registry = UrlRegistry(self._urls, self._clicks, generator or ShortcodeGenerator(),
                                    clock, audit)
        self.tracker = ClickTracker(self._urls, self._clicks, clock, audit)

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def create_short_url(self, original_url: str, validity_minutes: int = DEFAULT_VALIDITY_MIN,
                         custom_shortcode: Optional[str] = None) -> ShortURLRecord:
        with self._lock:
            return self.registry.create(original_url, validity_minutes, custom_shortcode)

    def get_url_data(self, shortcode: str) -> Optional[ShortURLRecord]:
        with self._lock:
            return self.registry.resolve(shortcode)

    def record_click(self, shortcode: str, ip: Optional[str] = None, user_agent: Optional[str] = None,
                     referrer: Optional[str] = None, location: Optional[str] = None) -> ClickRecord:
        with self._lock:
            return self.tracker.record(shortcode, ip, user_agent, referrer, location)

    def get_statistics(self, shortcode: str, include_expired: bool = True) -> Optional[UrlStatistics]:
        with self._lock:
            return self.tracker.statistics_for(shortcode, include_expired)

    def get_all_urls(self, include_expired: bool = True) -> List[UrlSummary]:
        with self._lock:
            return self.tracker.list_all(include_expired)

    def cleanup_expired_urls(self) -> int:
        with self._lock:
            return self.registry.cleanup_expired()
