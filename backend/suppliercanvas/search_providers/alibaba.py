import base64
import json
import logging
import time
import uuid
from typing import Optional

import httpx

from suppliercanvas.mappers.alibaba import map_offer_to_product, map_offers_to_suppliers
from suppliercanvas.pagination import ALIBABA_PRODUCT_PAGE_SIZE, ALIBABA_SUPPLIER_PAGE_SIZE, calculate_has_more
from suppliercanvas.parsers.alibaba import (
    extract_image_search_offers,
    extract_offer_list,
    extract_supplier_offers,
    parse_upload_response,
)
from suppliercanvas.search_providers.base import (
    ImageUpload,
    PlatformSearchResponse,
    PlatformType,
    SearchProvider,
    SupplierSearchResponse,
)
from suppliercanvas.search_providers.shared import USER_AGENT, fetch_json, fetch_text, log_mapping_defects, post_json


logger = logging.getLogger("uvicorn.error")

TEXT_SEARCH_URL = "https://www.alibaba.com/trade/search"
IMAGE_UPLOAD_URL = "https://www.alibaba.com/search/api/imageTextSearchRegions"
IMAGE_SEARCH_URL = "https://www.alibaba.com/search/api/imageTextSearch"
SUPPLIER_SEARCH_URL = "https://www.alibaba.com/search/api/supplierTextSearch"

# Эндпоинт поиска поставщиков ждёт запрос сразу в нескольких параметрах.
_SUPPLIER_QUERY_PARAMS = (
    "productQpKeywords",
    "queryProduct",
    "supplierQpKeywords",
    "supplierQpProductName",
    "productName",
    "queryRaw",
    "query",
    "queryMachineTranslate",
)


class AlibabaProvider(SearchProvider):
    platform = PlatformType.ALIBABA
    page_size = ALIBABA_PRODUCT_PAGE_SIZE
    supplier_page_size = ALIBABA_SUPPLIER_PAGE_SIZE

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        # None -> общий пул клиентов (с прокси из настроек).
        self._client = client

    @property
    def name(self) -> str:
        return self.platform.value

    async def search_text(self, query: str, page: int = 1) -> PlatformSearchResponse:
        q = (query or "").strip()
        if not q:
            return PlatformSearchResponse(unified_products=[], total_count=0, has_more=False, page=page)

        params = {
            "fsb": "y",
            "IndexArea": "product_en",
            "assessmentCompany": "true",
            "has4Tab": "true",
            "keywords": q,
            "originKeywords": q,
            "tab": "all",
            "page": str(page),
        }
        html = await fetch_text(self.name, TEXT_SEARCH_URL, client=self._client, params=params)
        offers, total = extract_offer_list(html)
        products = [map_offer_to_product(o) for o in offers]
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
        Два шага как одна операция: загрузка картинки (data URI) -> imagePath + regions,
        затем JSON-поиск по этому imagePath. Ошибка на любом шаге валит весь поиск.
        """
        mime = image.content_type or "image/jpeg"
        picture_base = f"data:{mime};base64,{base64.b64encode(image.data).decode('ascii')}"
        upload = await post_json(
            self.name,
            IMAGE_UPLOAD_URL,
            client=self._client,
            # (None, value) -> обычное поле multipart без имени файла.
            files={"pictureBase": (None, picture_base)},
            headers={
                "accept": "*/*",
                "origin": "https://www.alibaba.com",
                "referer": "https://www.alibaba.com/",
                "user-agent": USER_AGENT,
            },
        )
        image_path, regions = parse_upload_response(upload)

        params = {
            "tab": "all",
            "SearchScene": "imageTextSearch",
            "imagePath": image_path,
            "regions": json.dumps(regions),
            "from": "pcHomeContent",
            "page": str(page),
        }
        payload = await fetch_json(self.name, IMAGE_SEARCH_URL, client=self._client, params=params)
        offers, total = extract_image_search_offers(payload)
        products = [map_offer_to_product(o) for o in offers]
        log_mapping_defects(self.name, products)
        logger.info("%s: image page=%s -> %s products (total=%s)", self.name, page, len(products), total)
        return PlatformSearchResponse(
            unified_products=products,
            total_count=total,
            has_more=calculate_has_more(total, page, self.page_size, len(products)),
            page=page,
        )

    async def search_suppliers(self, query: str, page: int = 1) -> SupplierSearchResponse:
        q = (query or "").strip()
        if not q:
            return SupplierSearchResponse(suppliers=[], total_count=0, has_more=False, page=page)

        now_ms = int(time.time() * 1000)
        params = {p: q for p in _SUPPLIER_QUERY_PARAMS}
        params.update(
            {
                "pageSize": str(self.supplier_page_size),
                "page": str(page),
                "from": "pcHomeContent",
                "langident": "en",
                "verifiedManufactory": "false",
                "pro": "false",
                "productAttributes": "",
                "intention": "",
                "supplierAttributes": "",
                "requestId": f"AI_Web_{uuid.uuid4()}_{now_ms}",
                "startTime": str(now_ms),
            }
        )
        payload = await fetch_json(
            self.name,
            SUPPLIER_SEARCH_URL,
            client=self._client,
            params=params,
            headers={"accept": "application/json,text/javascript,*/*;q=0.01"},
        )
        offers, total = extract_supplier_offers(payload)
        suppliers = map_offers_to_suppliers(offers)
        logger.info("%s: suppliers %r page=%s -> %s suppliers (total=%s)", self.name, q, page, len(suppliers), total)
        return SupplierSearchResponse(
            suppliers=suppliers,
            total_count=total,
            has_more=calculate_has_more(total, page, self.supplier_page_size, len(suppliers)),
            page=page,
        )
