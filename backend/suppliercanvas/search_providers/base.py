from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PlatformType(str, Enum):
    ALIBABA = "alibaba"
    MADEINCHINA = "madeinchina"


class SearchInputType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class SearchInput:
    id: str
    type: SearchInputType
    value: str
    # Байты картинки идут отдельно от value (value — подпись/имя файла либо data: URI от агента).
    file: Optional[bytes] = field(default=None, repr=False)
    content_type: str = ""


@dataclass
class ImageUpload:
    data: bytes
    content_type: str = "image/jpeg"
    filename: str = "image.jpg"


@dataclass
class SupplierRef:
    id: str
    name: str
    url: str = ""
    location: Optional[str] = None
    badges: List[str] = field(default_factory=list)


@dataclass
class UnifiedProduct:
    id: str
    platform: PlatformType
    title: str
    image: str
    images: List[str]
    price: Optional[str]
    currency: Optional[str]
    moq: Optional[str]
    product_url: str
    attributes: Dict[str, str]
    supplier: SupplierRef
    platform_specific: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UnifiedSupplier:
    id: str
    platform: PlatformType
    name: str
    url: str
    location: Optional[str]
    badges: List[str]
    price: Optional[str]
    currency: Optional[str]
    moq: Optional[str]
    images: List[str]
    products: List[UnifiedProduct] = field(default_factory=list)
    matched_input_ids: List[str] = field(default_factory=list)
    platform_specific: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AggregatedSearchResult:
    inputs: List[SearchInput]
    results: List[UnifiedSupplier]
    timestamp: int


@dataclass
class PlatformSearchResponse:
    unified_products: List[UnifiedProduct]
    total_count: Optional[int]
    has_more: bool
    page: int = 1


@dataclass
class SupplierSearchResponse:
    suppliers: List[UnifiedSupplier]
    total_count: Optional[int]
    has_more: bool
    page: int = 1


class SearchProvider:
    platform: PlatformType
    page_size: int

    async def search_text(self, query: str, page: int = 1) -> PlatformSearchResponse:
        # pragma: no cover
        raise NotImplementedError

    async def search_image(self, image: ImageUpload, page: int = 1) -> PlatformSearchResponse:
        # pragma: no cover
        raise NotImplementedError

    async def search_suppliers(self, query: str, page: int = 1) -> SupplierSearchResponse:
        # pragma: no cover
        raise NotImplementedError
