from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from typing import Any, Dict, Iterable, Optional
import json, os, threading, time, uuid
from datetime import datetime, timezone

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.path.join(LOG_DIR, "app.log")

SKIP_PATHS = ("/health", "/favicon.ico")
SENSITIVE_HEADERS = ("authorization", "cookie", "token", "password", "x-api-key")

class JsonLineWriter:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
    def write(self, record: Dict[str, Any]) -> None:
        record["_ts"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str) + "\n"
        with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)

_writer = JsonLineWriter(LOG_FILE)

def json_safe(fields: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(fields, ensure_ascii=False, default=str))

class Audit:
    """Single logging entry point; optionally mirrors events to a remote shipper."""

    def __init__(self, writer: JsonLineWriter):
        self.writer = writer
        self.shipper = None
    def attach_shipper(self, shipper) -> None:
        self.shipper = shipper
    def detach_shipper(self) -> None:
        self.shipper = None
    def event(self, kind: str, level: str = "info", **fields: Any) -> None:
        self.writer.write({"kind": kind, "level": level, **fields})
        if self.shipper is not None:
            self.shipper.log("backend", level, "url-shortener", kind, json_safe(fields))

audit = default_audit = Audit(_writer)

def redact_headers(headers: Iterable, sensitive: Iterable[str] = SENSITIVE_HEADERS) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for name, value in headers:
        key = name.lower()
        out[key] = "[REDACTED]" if any(s in key for s in sensitive) else value
    return out

def level_for_status(status: int) -> str:
    if status >= 500:
        return "error"
    if status >= 400:
        return "warn"
    return "info"

class StructuredAuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, skip_paths: Optional[Iterable[str]] = None, audit: Optional[Audit] = None):
        super().__init__(app)
        self.audit = audit or default_audit
        self.skip_paths = tuple(skip_paths) if skip_paths is not None else SKIP_PATHS
    async def dispatch(self, request, call_next):
        if request.url.path in self.skip_paths:
            return await call_next(request)
        cid = str(uuid.uuid4())
        t0 = time.perf_counter()
        try:
            try:
                body = await request.body()
                body_len = len(body or b"")
            except Exception:
                body_len = -1
            self.audit.event(
                "http_request",
                cid=cid,
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                body_len=body_len,
                client=getattr(request.client, "host", None),
                headers=redact_headers(request.headers.items()),
            )
            response = await call_next(request)
            latency_ms = round((time.perf_counter() - t0) * 1000, 2)
            self.audit.event(
                "http_response",
                level=level_for_status(response.status_code),
                cid=cid,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                latency_ms=latency_ms,
            )
            return response
        except Exception as e:
            latency_ms = round((time.perf_counter() - t0) * 1000, 2)
            self.audit.event("http_exception", level="error", cid=cid, error=str(e), latency_ms=latency_ms)
            raise
