"""Record and response Pydantic models."""

from datetime import datetime

from pydantic import BaseModel


class PageMetadata(BaseModel):
    description: str = ""
    keywords: list[str] = []
    author: str = ""
    published_date: str = ""


class ExtractedImage(BaseModel):
    id: str = ""
    url: str
    alt_text: str = ""
    summary: str = ""
    tags: list[str] = []
    base64_data: str = ""


class LinkScore(BaseModel):
    url: str
    score: float
    reason: str
    categories: list[str] = []
    malicious_indicators: list[str] = []
    is_recommended: bool = False
    ai_used: bool = False


class ScrapedRecord(BaseModel):
    id: str
    url: str
    title: str = ""
    content: str = ""
    images: list[ExtractedImage] = []
    links: list[str] = []
    fetched_at: datetime
    created_at: datetime
    processing_time_seconds: float = 0.0
    cached: bool = False
    metadata: PageMetadata = PageMetadata()
    score: LinkScore | None = None


class BatchItemResult(BaseModel):
    url: str
    success: bool
    data: ScrapedRecord | None = None
    error: str | None = None
    cached: bool = False


class BatchSummary(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    cached: int = 0
    scraped: int = 0


class BatchResponse(BaseModel):
    results: list[BatchItemResult] = []
    summary: BatchSummary = BatchSummary()


class RecordPage(BaseModel):
    data: list[ScrapedRecord] = []
    total: int = 0
    limit: int = 20
    offset: int = 0


class LinkExtraction(BaseModel):
    url: str
    links: list[str] = []
    count: int = 0
