import json
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .agent_tools import SEARCH_TOOL_DESCRIPTION, SEARCH_TOOL_NAME, SearchToolInput, run_search_tool
from .db import get_db
from .errors import InvalidSearchRequest, UpstreamFetchError, UpstreamParseError
from .filters import FilterValue, apply_filters, supported_filters
from .repository import HtmlCacheRepository
from .schemas import (
    AgentSearchRequest,
    AgentSearchResponse,
    AgentToolOut,
    AggregatedSearchResponse,
    CacheAgeResponse,
    FilterDefinitionOut,
    FilterRequest,
    FilterResponse,
    FiltersResponse,
    PlatformSearchResponseOut,
    ProductDetailOut,
    QueueStatsResponse,
    ScrapeRequest,
    ScrapeResponse,
    SearchToolArtifactOut,
    StorefrontSearchRequest,
    UnifiedProductOut,
    UnifiedSupplierOut,
)
from .scraping import FirecrawlClient, MicProductDetailService, storefront_search
from .search_providers.base import PlatformType, SearchInput, SearchInputType, SupplierRef, UnifiedProduct
from .search_service import UnifiedSearchService
from .task_queue import BoundedTaskQueue

router = APIRouter(prefix="/api", tags=["search"])


def get_search_service(request: Request) -> UnifiedSearchService:
    return request.app.state.search_service


def get_firecrawl(request: Request) -> FirecrawlClient:
    return request.app.state.firecrawl


def get_detail_service(request: Request) -> MicProductDetailService:
    return request.app.state.mic_detail


def get_task_queue(request: Request) -> BoundedTaskQueue:
    return request.app.state.task_queue


def _upstream_error(e: Exception) -> HTTPException:
    return HTTPException(status_code=502, detail=str(e))


def _product_from_schema(p: UnifiedProductOut) -> UnifiedProduct:
    return UnifiedProduct(
        id=p.id,
        platform=p.platform,
        title=p.title,
        image=p.image,
        images=list(p.images),
        price=p.price,
        currency=p.currency,
        moq=p.moq,
        product_url=p.product_url,
        attributes=dict(p.attributes),
        supplier=SupplierRef(**p.supplier.model_dump()),
        platform_specific=dict(p.platform_specific),
    )


def _parse_json_field(raw: Optional[str], field: str):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"{field} must be valid JSON") from e


async def _inputs_from_form(form) -> list[SearchInput]:
    queries = _parse_json_field(form.get("queries") or "[]", "queries")
    if not isinstance(queries, list):
        raise HTTPException(status_code=400, detail="queries must be a JSON list")

    inputs: list[SearchInput] = []
    for q in queries:
        if not isinstance(q, dict) or not q.get("id"):
            raise HTTPException(status_code=400, detail="every query needs an id")
        input_id = str(q["id"])
        value = str(q.get("value") or "")
        upload = form.get(f"file_{input_id}")
        # В форме строки и файлы лежат вместе; файл узнаём по наличию read().
        if upload is not None and not isinstance(upload, str):
            data = await upload.read()
            inputs.append(
                SearchInput(
                    id=input_id,
                    type=SearchInputType.IMAGE,
                    value=upload.filename or value or "image.jpg",
                    file=data,
                    content_type=upload.content_type or "image/jpeg",
                )
            )
            continue
        raw_type = str(q.get("type") or ("image" if value.startswith("data:") else "text"))
        try:
            input_type = SearchInputType(raw_type)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"input {input_id}: unknown type {raw_type!r}") from e
        inputs.append(SearchInput(id=input_id, type=input_type, value=value))
    return inputs


@router.post("/search/unified", response_model=AggregatedSearchResponse)
async def search_unified(
    request: Request,
    service: UnifiedSearchService = Depends(get_search_service),
):
    form = await request.form()
    inputs = await _inputs_from_form(form)
    platforms = _parse_json_field(form.get("platforms"), "platforms")
    try:
        result = await service.search_aggregated(inputs, platforms)
    except InvalidSearchRequest as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return AggregatedSearchResponse.model_validate(result, from_attributes=True)


@router.get("/search/filters", response_model=FiltersResponse, tags=["filters"])
def get_filters():
    return FiltersResponse(items=[FilterDefinitionOut.model_validate(f) for f in supported_filters()])


@router.post("/search/filter", response_model=FilterResponse, tags=["filters"])
def filter_products(req: FilterRequest):
    products = [_product_from_schema(p) for p in req.products]
    filters = [FilterValue(filter_id=f.filter_id, value=f.value) for f in req.filters]
    kept = apply_filters(products, filters)
    return FilterResponse(
        products=[UnifiedProductOut.model_validate(p) for p in kept],
        count=len(kept),
    )


@router.get("/search/{platform}", response_model=PlatformSearchResponseOut)
async def search_platform(
    platform: str,
    query: str = Query(..., min_length=1, description="Поисковый запрос"),
    page: int = Query(1, ge=1, description="Номер страницы"),
    mode: Literal["products", "suppliers"] = Query("products"),
    service: UnifiedSearchService = Depends(get_search_service),
):
    try:
        platform_type = PlatformType(platform.strip().lower())
    except ValueError as e:
        raise HTTPException(status_code=404, detail=f"Unknown platform {platform}") from e
    provider = service.providers.get(platform_type)
    if provider is None:
        raise HTTPException(status_code=404, detail=f"Platform {platform} is not configured")

    try:
        if mode == "suppliers":
            res = await provider.search_suppliers(query, page=page)
            return PlatformSearchResponseOut(
                platform=platform_type,
                mode=mode,
                page=res.page,
                total_count=res.total_count,
                has_more=res.has_more,
                suppliers=[UnifiedSupplierOut.model_validate(s) for s in res.suppliers],
            )
        res = await provider.search_text(query, page=page)
    except InvalidSearchRequest as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (UpstreamFetchError, UpstreamParseError) as e:
        raise _upstream_error(e) from e
    return PlatformSearchResponseOut(
        platform=platform_type,
        mode=mode,
        page=res.page,
        total_count=res.total_count,
        has_more=res.has_more,
        products=[UnifiedProductOut.model_validate(p) for p in res.unified_products],
    )


@router.get("/agent/tool", response_model=AgentToolOut, tags=["agent"])
def get_agent_tool():
    return AgentToolOut(
        name=SEARCH_TOOL_NAME,
        description=SEARCH_TOOL_DESCRIPTION,
        parameters=SearchToolInput.model_json_schema(),
    )


@router.post("/agent/search", response_model=AgentSearchResponse, tags=["agent"])
async def agent_search(
    req: AgentSearchRequest,
    service: UnifiedSearchService = Depends(get_search_service),
):
    tool_input = SearchToolInput(queries=req.queries, search_type=req.search_type)
    summary, artifact = await run_search_tool(service, tool_input, attachments=req.images)
    return AgentSearchResponse(summary=summary, artifact=SearchToolArtifactOut.model_validate(artifact))


@router.post("/scrape", response_model=ScrapeResponse, tags=["scrape"])
async def scrape(
    req: ScrapeRequest,
    firecrawl: FirecrawlClient = Depends(get_firecrawl),
):
    try:
        html = await firecrawl.scrape_html(req.url)
    except (UpstreamFetchError, UpstreamParseError) as e:
        raise _upstream_error(e) from e
    return ScrapeResponse(success=True, html=html)


@router.post("/scrape/mic/detail", response_model=ProductDetailOut, tags=["scrape"])
async def scrape_mic_detail(
    req: ScrapeRequest,
    detail: MicProductDetailService = Depends(get_detail_service),
):
    try:
        data = await detail.fetch_detail(req.url)
    except (UpstreamFetchError, UpstreamParseError) as e:
        raise _upstream_error(e) from e
    return ProductDetailOut(**data)


@router.post("/scrape/storefront", tags=["scrape"])
async def scrape_storefront(
    req: StorefrontSearchRequest,
    firecrawl: FirecrawlClient = Depends(get_firecrawl),
):
    async def lines():
        async for batch in storefront_search(firecrawl, req.urls, req.keywords, page=req.page):
            yield json.dumps(batch, ensure_ascii=False) + "\n"

    return StreamingResponse(
        lines(),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/cache/age", response_model=CacheAgeResponse, tags=["scrape"])
def get_cache_age(
    url: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    return CacheAgeResponse(url=url, age_seconds=HtmlCacheRepository(db).get_cache_age(url))


@router.get("/queue/stats", response_model=QueueStatsResponse, tags=["scrape"])
def get_queue_stats(queue: BoundedTaskQueue = Depends(get_task_queue)):
    return QueueStatsResponse(**queue.stats())
