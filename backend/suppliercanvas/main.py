import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .api import router as api_router
from .config import settings
from .db import init_db
from .html_cache import HtmlCache
from .scraping import FirecrawlClient, MicProductDetailService
from .search_providers.alibaba import AlibabaProvider
from .search_providers.base import PlatformType
from .search_providers.madeinchina import MadeInChinaProvider
from .search_providers.shared import close_http_client, init_http_client
from .search_service import UnifiedSearchService
from .task_queue import BoundedTaskQueue

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
    except SQLAlchemyError as e:
        # Без базы работаем без кеша HTML.
        logger.warning("db: init failed, html cache unavailable: %s", e)
    await init_http_client()

    queue = BoundedTaskQueue(settings.firecrawl_concurrency)
    firecrawl = FirecrawlClient(queue, HtmlCache())
    app.state.task_queue = queue
    app.state.firecrawl = firecrawl
    app.state.mic_detail = MicProductDetailService(firecrawl)
    app.state.search_service = UnifiedSearchService(
        {
            PlatformType.ALIBABA: AlibabaProvider(),
            PlatformType.MADEINCHINA: MadeInChinaProvider(),
        }
    )
    yield
    await close_http_client()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

@app.get("/health", tags=["health"])
def health_check():
    return {"status": "ok"}
