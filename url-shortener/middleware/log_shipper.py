"""Remote log delivery with retry and linear backoff.

Usable from any service: ``LogShipper.log(stack, level, package, message)``
validates the call, then posts the entry to the collector on a background
thread. Delivery problems are reported to stderr and never raised.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import json, sys, time, traceback

import httpx

VALID_STACKS = ("backend", "frontend")
VALID_LEVELS = ("debug", "info", "warn", "error", "fatal")
USER_AGENT = "URL-Shortener-Logger/1.0.0"


class LogValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ShipperConfig:
    api_url: str
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 5.0
    enable_metadata: bool = True
    enable_console_log: bool = False


def validate_params(stack: str, level: str, package: str, message: str) -> None:
    if stack not in VALID_STACKS:
        raise LogValidationError(f"Invalid stack: {stack}. Must be one of: {', '.join(VALID_STACKS)}")
    if level not in VALID_LEVELS:
        raise LogValidationError(f"Invalid level: {level}. Must be one of: {', '.join(VALID_LEVELS)}")
    if not package or not isinstance(package, str):
        raise LogValidationError("Package name must be a non-empty string")
    if not message or not isinstance(message, str):
        raise LogValidationError("Message must be a non-empty string")


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class LogShipper:
    def __init__(
        self,
        config: ShipperConfig,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.Client()
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="log-shipper")

    def build_payload(self, stack: str, level: str, package: str, message: str,
                      metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "stack": stack,
            "level": level,
            "package": package,
            "message": message,
            "timestamp": _utc_stamp(),
        }
        if self.config.enable_metadata and metadata:
            payload["metadata"] = metadata
        return payload

    def send(self, payload: Dict[str, Any]) -> bool:
        """POST one entry; True once the collector accepts it."""
        try:
            body = json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            print(f"Log entry could not be encoded: {e}", file=sys.stderr)
            return False
        last_error: Optional[Exception] = None
        for attempt in range(1, self.config.max_retries + 1):
            try:
                resp = self.client.post(
                    self.config.api_url,
                    content=body.encode("utf-8"),
                    timeout=self.config.timeout,
                    headers={"User-Agent": USER_AGENT, "Content-Type": "application/json"},
                )
                resp.raise_for_status()
                return True
            except httpx.HTTPError as e:
                last_error = e
                print(f"Log delivery attempt {attempt} failed: {e}", file=sys.stderr)
                if attempt < self.config.max_retries:
                    self._sleep(self.config.retry_delay * attempt)
        print(f"Failed to deliver log after all retries: {body} ({last_error})", file=sys.stderr)
        return False

    def _deliver(self, payload: Dict[str, Any]) -> bool:
        # runs on the worker thread; nobody reads the future's exception
        try:
            return self.send(payload)
        except Exception as e:
            print(f"Log delivery crashed: {e!r}", file=sys.stderr)
            return False

    def log_to_console(self, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if not self.config.enable_console_log:
            return
        stream = sys.stderr if level in ("warn", "error", "fatal") else sys.stdout
        print(f"[{_utc_stamp()}] [{level.upper()}] {message}", metadata or "", file=stream)

    def log(self, stack: str, level: str, package: str, message: str,
            metadata: Optional[Dict[str, Any]] = None) -> Optional[Future]:
        try:
            validate_params(stack, level, package, message)
        except LogValidationError as e:
            print(f"Logger error: {e}", file=sys.stderr)
            return None
        payload = self.build_payload(stack, level, package, message, metadata)
        self.log_to_console(level, message, metadata)
        return self._executor.submit(self._deliver, payload)

    def debug(self, stack, package, message, metadata=None):
        return self.log(stack, "debug", package, message, metadata)

    def info(self, stack, package, message, metadata=None):
        return self.log(stack, "info", package, message, metadata)

    def warn(self, stack, package, message, metadata=None):
        return self.log(stack, "warn", package, message, metadata)

    def error(self, stack, package, message, metadata=None):
        return self.log(stack, "error", package, message, metadata)

    def fatal(self, stack, package, message, metadata=None):
        return self.log(stack, "fatal", package, message, metadata)

    def log_error(self, stack: str, package: str, error: BaseException, context: str = "",
                  metadata: Optional[Dict[str, Any]] = None) -> Optional[Future]:
        info = {
            "name": type(error).__name__,
            "message": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        message = f"{context}: {error}" if context else str(error)
        return self.log(stack, "error", package, message, {**(metadata or {}), "error": info})

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._owns_client:
            self.client.close()
