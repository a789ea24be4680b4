import ipaddress
import random
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

def base62(n: int = 6, rng: random.Random | None = None) -> str:
    pick = (rng or random).choice
    return "".join(pick(ALPHABET) for _ in range(n))

_shortcode_re = re.compile(r"[A-Za-z0-9]{3,20}")
def valid_shortcode(s) -> bool:
    return isinstance(s, str) and bool(_shortcode_re.fullmatch(s))

def valid_url(u: str) -> bool:
    try:
        p = urlparse(u)
        return p.scheme in ("http", "https") and bool(p.netloc)
    except ValueError:
        return False

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def mins_from(start: datetime, m: int) -> datetime:
    return start + timedelta(minutes=m)

def iso_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00","Z")

def coarse_ip(ip: str | None) -> str:
    if not ip:
        return "unknown"
    if ":" in ip:
        parts = ip.split(":")
        return ":".join(parts[:3]) + "::/48"
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.x.x"
    return "unknown"

def locate_ip(ip: str | None) -> str:
    """Best-effort location label for a client address."""
    if not ip:
        return "Unknown"
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return "Unknown"
    if addr.is_private or addr.is_loopback:
        return "Local/Private Network"
    return coarse_ip(ip)
