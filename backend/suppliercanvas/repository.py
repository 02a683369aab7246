from __future__ import annotations

from datetime import timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models


class HtmlCacheRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_cached_html(self, url: str) -> Optional[str]:
        row = self.db.get(models.CachedHtml, url)
        return row.html if row else None

    def set_cached_html(self, url: str, html: str) -> None:
        """
        Upsert по url. При гонке двух писателей побеждает последний: второй ловит
        IntegrityError на вставке и перезаписывает строку.
        """
        now = models.utcnow()
        row = self.db.get(models.CachedHtml, url)
        if row:
            row.html = html
            row.updated_at = now
            self.db.commit()
            return

        self.db.add(models.CachedHtml(url=url, html=html, created_at=now, updated_at=now))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            row = self.db.get(models.CachedHtml, url)
            if row:
                row.html = html
                row.updated_at = now
                self.db.commit()

    def get_cache_age(self, url: str) -> Optional[float]:
        row = self.db.get(models.CachedHtml, url)
        if not row:
            return None
        updated = row.updated_at
        # SQLite возвращает naive datetime, пишем мы всегда в UTC.
        if updated.tzinfo is None:
            updated = updated.replace(tzinfo=timezone.utc)
        return (models.utcnow() - updated).total_seconds()
