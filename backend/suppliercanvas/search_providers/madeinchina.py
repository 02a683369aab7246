import asyncio
import logging
import re
from io import BytesIO
from typing import Optional, Tuple
from urllib.parse import quote

import httpx
from PIL import Image, UnidentifiedImageError

from suppliercanvas.errors import InvalidSearchRequest, UpstreamParseError
from suppliercanvas.mappers.madeinchina import map_companies_to_suppliers, map_listing_to_product
from suppliercanvas.pagination import (
    MIC_COMPANY_PAGE_SIZE,
    MIC_IMAGE_PAGE_SIZE,
    MIC_PRODUCT_PAGE_SIZE,
    calculate_has_more,
)
from suppliercanvas.parsers.madeinchina import (
    BASE_URL,
    extract_total_count,
    parse_company_search,
    parse_image_search,
    parse_product_search,
)
from suppliercanvas.search_providers.base import (
    ImageUpload,
    PlatformSearchResponse,
    PlatformType,
    SearchProvider,
    SupplierSearchResponse,
)
from suppliercanvas.search_providers.shared import fetch_text, log_mapping_defects, post_json


logger = logging.getLogger("uvicorn.error")

IMAGE_UPLOAD_URL = "https://file.made-in-china.com/img-search/upload"
IMAGE_AJAX_URL = "https://www.made-in-china.com/img-search/ajax/{image_id}"

JPEG_QUALITY = 80


def keyword_segment(query: str) -> str:
    """«white sofa» -> «white+sofa»: площадка ждёт ключевые слова в пути через +."""
    return quote(re.sub(r"\s+", "+", query.strip()), safe="+")


def reencode_jpeg(data: bytes) -> Tuple[bytes, int, int]:
    try:
        with Image.open(BytesIO(data)) as img:
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidSearchRequest(f"image could not be decoded: {e}") from e
    buf = BytesIO()
    rgb.save(buf, format="JPEG", quality=JPEG_QUALITY)
    width, height = rgb.size
    return buf.getvalue(), width, height


class MadeInChinaProvider(SearchProvider):
    platform = PlatformType.MADEINCHINA
    page_size = MIC_PRODUCT_PAGE_SIZE
    image_page_size = MIC_IMAGE_PAGE_SIZE
    supplier_page_size = MIC_COMPANY_PAGE_SIZE

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return self.platform.value

    async def search_text(self, query: str, page: int = 1) -> PlatformSearchResponse:
        q = (query or "").strip()
        if not q:
            return PlatformSearchResponse(unified_products=[], total_count=0, has_more=False, page=page)

        url = f"{BASE_URL}/multi-search/{keyword_segment(q)}/F1/{page}.html"
        html = await fetch_text(self.name, url, client=self._client)
        records = parse_product_search(html)
        total = extract_total_count(html)
        products = [map_listing_to_product(r) for r in records]
        log_mapping_defects(self.name, products)
        logger.info("%s: text %r page=%s -> %s products (total=%s)", self.name, q, page, len(products), total)
        return PlatformSearchResponse(
            unified_products=products,
            total_count=total,
            has_more=calculate_has_more(total, page, self.page_size, len(products)),
            page=page,
        )

    async def search_image(self, image: ImageUpload, page: int = 1) -> PlatformSearchResponse:
        """
        Загрузка (перекодированный JPEG q80 + размеры) -> URL страницы результатов.
        Первая страница берётся по этому URL, следующие через ajax по id картинки.
        """
        jpeg, width, height = await asyncio.to_thread(reencode_jpeg, image.data)
        upload = await post_json(
            self.name,
            IMAGE_UPLOAD_URL,
            client=self._client,
            files={"multipartFile": ("image.jpg", jpeg, "image/jpeg")},
            data={
                "orgwidth": str(width),
                "orgheight": str(height),
                "zipsize": str(len(jpeg)),
                "orgsize": str(len(image.data)),
            },
            headers={"Origin": BASE_URL, "Referer": f"{BASE_URL}/"},
        )
        data = upload.get("data") if isinstance(upload, dict) else None
        result_url = data.get("url") if isinstance(data, dict) else None
        if not result_url:
            raise UpstreamParseError(self.name, "image upload response has no result url")

        if page == 1:
            html = await fetch_text(self.name, result_url, client=self._client)
        else:
            image_id = result_url.rstrip("/").rsplit("/", 1)[-1].replace(".html", "")
            if not image_id:
                raise UpstreamParseError(self.name, f"cannot derive image id from {result_url!r}")
            html = await fetch_text(
                self.name,
                IMAGE_AJAX_URL.format(image_id=image_id),
                client=self._client,
                params={"leafCode": "", "colorCode": "", "page": str(page)},
                headers={"X-Requested-With": "XMLHttpRequest"},
            )

        products = [map_listing_to_product(r) for r in parse_image_search(html)]
        log_mapping_defects(self.name, products)
        logger.info("%s: image page=%s -> %s products", self.name, page, len(products))
        return PlatformSearchResponse(
            unified_products=products,
            total_count=None,
            has_more=calculate_has_more(None, page, self.image_page_size, len(products)),
            page=page,
        )

    async def search_suppliers(self, query: str, page: int = 1) -> SupplierSearchResponse:
        q = (query or "").strip()
        if not q:
            return SupplierSearchResponse(suppliers=[], total_count=0, has_more=False, page=page)

        url = f"{BASE_URL}/company-search/{keyword_segment(q)}/C1/{page}.html"
        html = await fetch_text(self.name, url, client=self._client, headers={"Referer": BASE_URL})
        parsed = parse_company_search(html, q, page)
        suppliers = map_companies_to_suppliers(parsed.companies)
        logger.info(
            "%s: suppliers %r page=%s -> %s suppliers (total=%s)",
            self.name,
            q,
            page,
            len(suppliers),
            parsed.total_count,
        )
        return SupplierSearchResponse(
            suppliers=suppliers,
            total_count=parsed.total_count,
            has_more=calculate_has_more(parsed.total_count, page, self.supplier_page_size, len(suppliers)),
            page=page,
        )
