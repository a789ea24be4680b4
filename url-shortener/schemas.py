from pydantic import BaseModel, Field, StrictInt
from typing import Optional, List

class CreateShortURLReq(BaseModel):
    url: str = Field(..., description="Original long URL")
    validity: Optional[StrictInt] = Field(None, description="Minutes (default 30)")
    shortcode: Optional[str] = Field(None, description="Custom shortcode")

class CreateShortURLResp(BaseModel):
    shortLink: str
    expiry: str

class ClickItem(BaseModel):
    timestamp: str
    referrer: str
    location: str
    userAgent: Optional[str] = None

class StatsResp(BaseModel):
    shortcode: str
    shortLink: str
    originalUrl: str
    createdAt: str
    expiresAt: str
    totalClicks: int
    clicks: List[ClickItem]

class URLItem(BaseModel):
    id: str
    shortcode: str
    shortLink: str
    originalUrl: str
    createdAt: str
    expiresAt: str
    validityMinutes: int
    isActive: bool
    totalClicks: int

class AllURLsResp(BaseModel):
    success: bool = True
    message: str
    data: List[URLItem]
    timestamp: str

class HealthResp(BaseModel):
    status: str
    timestamp: str
    service: str
    version: str
    urlsStored: int
