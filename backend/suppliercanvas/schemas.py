from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .search_providers.base import PlatformType, SearchInputType


class SupplierRefOut(BaseModel):
    id: str
    name: str
    url: str = ""
    location: Optional[str] = None
    badges: list[str] = []

    model_config = {"from_attributes": True}


class UnifiedProductOut(BaseModel):
    id: str
    platform: PlatformType
    title: str
    image: str = ""
    images: list[str] = []
    price: Optional[str] = None
    currency: Optional[str] = None
    moq: Optional[str] = None
    product_url: str = ""
    attributes: dict[str, str] = {}
    supplier: SupplierRefOut
    platform_specific: dict[str, Any] = {}

    model_config = {"from_attributes": True}


class UnifiedSupplierOut(BaseModel):
    id: str
    platform: PlatformType
    name: str
    url: str = ""
    location: Optional[str] = None
    badges: list[str] = []
    price: Optional[str] = None
    currency: Optional[str] = None
    moq: Optional[str] = None
    images: list[str] = []
    products: list[UnifiedProductOut] = []
    matched_input_ids: list[str] = []
    platform_specific: dict[str, Any] = {}

    model_config = {"from_attributes": True}


class SearchInputOut(BaseModel):
    id: str
    type: SearchInputType
    value: str = Field("", description="Текст запроса или имя файла картинки")

    model_config = {"from_attributes": True}


class AggregatedSearchResponse(BaseModel):
    inputs: list[SearchInputOut]
    results: list[UnifiedSupplierOut]
    timestamp: int


class PlatformSearchResponseOut(BaseModel):
    platform: PlatformType
    mode: Literal["products", "suppliers"]
    page: int
    total_count: Optional[int] = None
    has_more: bool = False
    products: list[UnifiedProductOut] = []
    suppliers: list[UnifiedSupplierOut] = []


class FilterDefinitionOut(BaseModel):
    id: str
    label: str
    type: str
    platform: Optional[PlatformType] = None
    min: Optional[int] = None
    max: Optional[int] = None
    unit: Optional[str] = None
    options: list[dict[str, Any]] = []

    model_config = {"from_attributes": True}


class FiltersResponse(BaseModel):
    items: list[FilterDefinitionOut]


class FilterValueIn(BaseModel):
    filter_id: str
    value: Any = None


class FilterRequest(BaseModel):
    products: list[UnifiedProductOut]
    filters: list[FilterValueIn] = []


class FilterResponse(BaseModel):
    products: list[UnifiedProductOut]
    count: int


class AgentSearchRequest(BaseModel):
    queries: list[str] = Field(..., min_length=1)
    search_type: Literal["products", "suppliers"] = "products"
    images: list[str] = Field([], description="Вложенные картинки в виде data: URI")


class SearchToolArtifactOut(BaseModel):
    queries: list[str]
    search_type: str
    results: list[UnifiedSupplierOut] = []
    count: int = 0
    inputs: list[SearchInputOut] = []
    error: Optional[str] = None

    model_config = {"from_attributes": True}


class AgentToolOut(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any]


class AgentSearchResponse(BaseModel):
    summary: str
    artifact: SearchToolArtifactOut


class ScrapeRequest(BaseModel):
    url: str = Field(..., min_length=1)


class ScrapeResponse(BaseModel):
    success: bool
    html: Optional[str] = None


class PricingTierOut(BaseModel):
    quantity: str
    price: str


class SpecValueOut(BaseModel):
    label: str
    image_url: Optional[str] = None


class ProductSpecOut(BaseModel):
    name: str
    values: list[SpecValueOut]


class ProductDetailOut(BaseModel):
    id: str
    title: str
    url: str
    pricing: list[PricingTierOut] = []
    specs: list[ProductSpecOut] = []
    attributes: dict[str, str] = {}
    media_urls: list[str] = []
    supplier_name: Optional[str] = None
    supplier_location: Optional[str] = None


class StorefrontSearchRequest(BaseModel):
    urls: list[str] = Field(..., min_length=1)
    keywords: list[str] = Field(..., min_length=1)
    page: int = Field(1, ge=1)


class CacheAgeResponse(BaseModel):
    url: str
    age_seconds: Optional[float] = None


class QueueStatsResponse(BaseModel):
    active: int
    queued: int
    max_concurrency: int
