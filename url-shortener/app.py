from contextlib import asynccontextmanager
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import os
from config import Settings, settings as default_settings
from jobs import CleanupJob
from models import ShortURLRecord
from registry import InvalidShortcodeFormat, ShortcodeAlreadyExists, ShortUrlStore
from schemas import (AllURLsResp, ClickItem, CreateShortURLReq, CreateShortURLResp, HealthResp,
                     StatsResp, URLItem)
from utils import iso_z, locate_ip, utc_now, valid_shortcode, valid_url
from middleware.custom_logger import Audit, JsonLineWriter, StructuredAuditMiddleware
from middleware.log_shipper import LogShipper, ShipperConfig
from middleware.rate_limit import RateLimitMiddleware, SlidingWindowRateLimiter

SERVICE_NAME = "URL Shortener Microservice"
VERSION = "1.0.0"

router = APIRouter()

def get_store(request: Request) -> ShortUrlStore:
    return request.app.state.store

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_audit(request: Request) -> Audit:
    return request.app.state.audit

def make_short_link(request: Request, shortcode: str) -> str:
    base = get_settings(request).base_url or str(request.base_url)
    if not base.endswith("/"):
        base += "/"
    return base + shortcode

def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return forwarded or request.headers.get("x-real-ip") or getattr(request.client, "host", None)

def url_item(request: Request, record: ShortURLRecord, total_clicks: int) -> URLItem:
    return URLItem(
        id=record.id,
        shortcode=record.shortcode,
        shortLink=make_short_link(request, record.shortcode),
        originalUrl=record.original_url,
        createdAt=iso_z(record.created_at),
        expiresAt=iso_z(record.expires_at),
        validityMinutes=record.validity_minutes,
        isActive=record.is_active,
        totalClicks=total_clicks,
    )

@router.get("/health", response_model=HealthResp)
def health(store: ShortUrlStore = Depends(get_store)):
    return HealthResp(status="healthy", timestamp=iso_z(utc_now()), service=SERVICE_NAME,
                      version=VERSION, urlsStored=len(store))

@router.post("/shorturls", response_model=CreateShortURLResp, status_code=201)
def create_short_url(payload: CreateShortURLReq, request: Request,
                     store: ShortUrlStore = Depends(get_store)):
    cfg = get_settings(request)
    url = payload.url.strip()
    if not valid_url(url):
        raise HTTPException(status_code=400, detail="invalid url")
    validity = payload.validity if payload.validity is not None else cfg.default_validity_minutes
    if validity <= 0 or validity > cfg.max_validity_minutes:
        raise HTTPException(status_code=400, detail="invalid validity")

    user_code: Optional[str] = payload.shortcode.strip() if payload.shortcode else None
    try:
        u = store.create_short_url(url, validity, user_code or None)
    except InvalidShortcodeFormat as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ShortcodeAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    return CreateShortURLResp(shortLink=make_short_link(request, u.shortcode), expiry=iso_z(u.expires_at))

@router.get("/shorturls/{shortcode}", response_model=StatsResp)
def get_stats(shortcode: str, request: Request, store: ShortUrlStore = Depends(get_store)):
    code = shortcode.strip()
    stats = store.get_statistics(code) if code else None
    if stats is None:
        raise HTTPException(status_code=404, detail="Short URL not found or has expired")
    items = [ClickItem(timestamp=iso_z(c.timestamp), referrer=c.referrer, location=c.location,
                       userAgent=c.user_agent) for c in stats.clicks]
    get_audit(request).event("stats_view", shortcode=code, totalClicks=stats.total_clicks)
    return StatsResp(
        shortcode=stats.shortcode,
        shortLink=make_short_link(request, stats.shortcode),
        originalUrl=stats.original_url,
        createdAt=iso_z(stats.created_at),
        expiresAt=iso_z(stats.expires_at),
        totalClicks=stats.total_clicks,
        clicks=items,
    )

@router.get("/all-urls", response_model=AllURLsResp)
def all_urls(request: Request, include_expired: bool = True, store: ShortUrlStore = Depends(get_store)):
    entries = store.get_all_urls(include_expired=include_expired)
    get_audit(request).event("all_urls_view", count=len(entries), include_expired=include_expired)
    return AllURLsResp(
        message="All URLs retrieved successfully",
        data=[url_item(request, e.record, e.total_clicks) for e in entries],
        timestamp=iso_z(utc_now()),
    )

@router.get("/{shortcode}")
def redirect_shortcode(shortcode: str, request: Request, store: ShortUrlStore = Depends(get_store)):
    if not valid_shortcode(shortcode):
        raise HTTPException(status_code=404, detail="Short URL not found or has expired")
    u = store.get_url_data(shortcode)
    if u is None:
        raise HTTPException(status_code=404, detail="Short URL not found or has expired")

    ref = request.headers.get("referer") or request.headers.get("referrer")
    ua = request.headers.get("user-agent", "")[:500]
    ip = client_ip(request)
    location = locate_ip(ip)
    store.record_click(shortcode, ip=ip, user_agent=ua, referrer=ref, location=location)
    get_audit(request).event("redirect_hit", shortcode=shortcode, source=ref or "Direct", geo=location)
    return RedirectResponse(url=u.original_url, status_code=302)

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid request") if errors else "invalid request"
    get_audit(request).event("request_invalid", level="warn", path=request.url.path, detail=detail)
    return JSONResponse(status_code=400, content={"error": detail})

@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    audit: Audit = app.state.audit
    shipper = None
    if cfg.remote_log_url:
        shipper = LogShipper(ShipperConfig(
            api_url=cfg.remote_log_url,
            max_retries=cfg.remote_log_max_retries,
            retry_delay=cfg.remote_log_retry_delay,
            timeout=cfg.remote_log_timeout,
            enable_console_log=cfg.remote_log_console,
        ))
        audit.attach_shipper(shipper)
    app.state.cleanup_job.start()
    audit.event("server_started", service=SERVICE_NAME, version=VERSION)
    try:
        yield
    finally:
        await app.state.cleanup_job.stop()
        audit.event("server_stopped")
        if shipper is not None:
            audit.detach_shipper()
            shipper.close()

def create_app(settings: Optional[Settings] = None, store: Optional[ShortUrlStore] = None) -> FastAPI:
    cfg = settings or default_settings
    audit = Audit(JsonLineWriter(os.path.join(cfg.log_dir, "app.log")))

    app = FastAPI(title="Affordmed URL Shortener", version=VERSION, lifespan=lifespan)
    app.state.settings = cfg
    app.state.audit = audit
    app.state.store = store if store is not None else ShortUrlStore(audit=audit)
    app.state.cleanup_job = CleanupJob(app.state.store, cfg.cleanup_interval_minutes, audit)

    limiter = SlidingWindowRateLimiter(cfg.rate_limit_max_requests, cfg.rate_limit_window_seconds)
    app.state.rate_limiter = limiter
    app.add_middleware(RateLimitMiddleware, limiter=limiter, audit=audit)
    app.add_middleware(StructuredAuditMiddleware, audit=audit)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router)
    return app

app = create_app()
