import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .db import SessionLocal
from .repository import HtmlCacheRepository


logger = logging.getLogger("uvicorn.error")


class HtmlCache:
    """
    Асинхронная обёртка над HtmlCacheRepository. Сессии синхронные, поэтому работаем через to_thread.
    Кеш вспомогательный: любые ошибки БД логируем и ведём себя как при промахе.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        enabled: Optional[bool] = None,
    ) -> None:
        self._session_factory = session_factory
        self.enabled = settings.html_cache_enabled if enabled is None else enabled

    def _get(self, url: str) -> Optional[str]:
        with self._session_factory() as db:
            return HtmlCacheRepository(db).get_cached_html(url)

    def _set(self, url: str, html: str) -> None:
        with self._session_factory() as db:
            HtmlCacheRepository(db).set_cached_html(url, html)

    def _age(self, url: str) -> Optional[float]:
        with self._session_factory() as db:
            return HtmlCacheRepository(db).get_cache_age(url)

    async def get_cached_html(self, url: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            html = await asyncio.to_thread(self._get, url)
        except SQLAlchemyError as e:
            logger.warning("cache: read failed for %s: %s: %s", url, type(e).__name__, e)
            return None
        if html is not None:
            logger.info("cache: hit %s", url)
        return html

    async def set_cached_html(self, url: str, html: str) -> None:
        if not self.enabled:
            return
        try:
            await asyncio.to_thread(self._set, url, html)
        except SQLAlchemyError as e:
            logger.warning("cache: write failed for %s: %s: %s", url, type(e).__name__, e)
            return
        logger.info("cache: saved %s (bytes=%s)", url, len(html))

    async def get_cache_age(self, url: str) -> Optional[float]:
        if not self.enabled:
            return None
        try:
            return await asyncio.to_thread(self._age, url)
        except SQLAlchemyError as e:
            logger.warning("cache: age lookup failed for %s: %s: %s", url, type(e).__name__, e)
            return None
