"""
Клиент скрейпинг-бэкенда (Firecrawl) и сценарии поверх него: карточка товара MIC
и поиск по витринам поставщиков.

Все запросы к бэкенду идут через общую BoundedTaskQueue: у бэкенда жёсткий лимит
параллельных запросов на аккаунт.
"""

import logging
from typing import AsyncIterator, List, Optional, Sequence
from urllib.parse import quote, urlsplit

import httpx

from .config import settings
from .errors import SupplierCanvasError, UpstreamParseError
from .html_cache import HtmlCache
from .parsers.madeinchina import parse_product_detail, parse_storefront_search
from .search_providers.shared import get_http_client, post_json
from .task_queue import BoundedTaskQueue


logger = logging.getLogger("uvicorn.error")

BACKEND_NAME = "firecrawl"
STOREFRONT_PAGE_SIZE = 48


class FirecrawlClient:
    def __init__(
        self,
        queue: BoundedTaskQueue,
        cache: HtmlCache,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        wait_for_ms: Optional[int] = None,
    ) -> None:
        self.queue = queue
        self.cache = cache
        self._http_client = http_client
        self.api_url = api_url or settings.firecrawl_api_url
        self.api_key = settings.firecrawl_api_key if api_key is None else api_key
        self.wait_for_ms = settings.firecrawl_wait_for_ms if wait_for_ms is None else wait_for_ms

    async def scrape_html(self, url: str) -> str:
        """
        HTML страницы: сначала кеш, при промахе запрос к бэкенду через очередь.
        Успешный ответ сохраняется в кеш.
        """
        cached = await self.cache.get_cached_html(url)
        if cached:
            return cached

        html = await self.queue.add(lambda: self._scrape(url))
        await self.cache.set_cached_html(url, html)
        return html

    async def _scrape(self, url: str) -> str:
        client = self._http_client or await get_http_client()
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = await post_json(
            BACKEND_NAME,
            self.api_url,
            client=client,
            json_body={
                "url": url,
                "onlyMainContent": False,
                "formats": ["html"],
                "waitFor": self.wait_for_ms,
            },
            headers=headers,
        )
        if not isinstance(payload, dict):
            payload = {}
        data = payload.get("data")
        html = data.get("html") if isinstance(data, dict) else None
        if not payload.get("success") or not html:
            raise UpstreamParseError(BACKEND_NAME, f"no html in scrape response for {url}")
        logger.info("%s: scraped %s (bytes=%s, queue=%s)", BACKEND_NAME, url, len(html), self.queue.stats())
        return html


class MicProductDetailService:
    def __init__(self, firecrawl: FirecrawlClient) -> None:
        self.firecrawl = firecrawl

    async def fetch_detail(self, url: str) -> dict:
        html = await self.firecrawl.scrape_html(url)
        return parse_product_detail(html, url)


def storefront_search_url(supplier_url: str, keyword: str, page: int = 1, page_size: int = STOREFRONT_PAGE_SIZE) -> str:
    base = supplier_url.strip().rstrip("/")
    if not urlsplit(base).scheme:
        base = f"https://{base}"
    return f"{base}/product/keywordSearch?word={quote(keyword.strip())}&pageNumber={page}&pageSize={page_size}"


async def storefront_search(
    firecrawl: FirecrawlClient,
    urls: Sequence[str],
    keywords: Sequence[str],
    page: int = 1,
) -> AsyncIterator[List[dict]]:
    """
    Перебирает все пары (витрина, ключевое слово) и отдаёт найденные товары пачками.
    Ошибка одной пары логируется и не останавливает остальные.
    """
    for url in urls:
        base = url.strip().rstrip("/")
        if not base:
            continue
        for keyword in keywords:
            if not keyword.strip():
                continue
            search_url = storefront_search_url(base, keyword, page)
            try:
                html = await firecrawl.scrape_html(search_url)
            except SupplierCanvasError as e:
                logger.error("storefront: %s failed: %s", search_url, e)
                continue
            products = parse_storefront_search(html, base, keyword)
            logger.info("storefront: %s -> %s products", search_url, len(products))
            if products:
                yield products
