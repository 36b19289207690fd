from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import httpx

from netbattle.domain.models.combatant import EntityTemplate
from netbattle.domain.repositories import EntityCatalog
from netbattle.infrastructure.resilient_http import get_text_with_retry
from netbattle.infrastructure.tsv_catalog import chip_records_from_rows, entity_templates_from_rows, parse_tsv


logger = logging.getLogger(__name__)

DEFAULT_CATALOG_TTL_SECONDS = 300


class TsvSheetClient:
    def __init__(
        self,
        *,
        timeout: float = 10.0,
        retries: int = 2,
        backoff_seconds: float = 0.2,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self._client = http_client or httpx.Client(timeout=timeout, headers={"Accept": "text/tab-separated-values"})

    def fetch_rows(self, url: str) -> list[dict[str, str]]:
        body = get_text_with_retry(
            self._client,
            url,
            retries=self.retries,
            backoff_seconds=self.backoff_seconds,
        )
        return parse_tsv(body)

    def close(self) -> None:
        self._client.close()


class RemoteEntityCatalog(EntityCatalog):
    """Virus catalog read from a published sheet, refreshed after ``ttl_seconds``.

    A failed refresh keeps serving the last good snapshot.
    """

    def __init__(
        self,
        sheet_client: TsvSheetClient,
        url: str,
        *,
        ttl_seconds: int = DEFAULT_CATALOG_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sheet_client = sheet_client
        self.url = url
        self.ttl_seconds = max(0, int(ttl_seconds))
        self._clock = clock
        self._templates: List[EntityTemplate] = []
        self._loaded_at: float | None = None
        self._lock = threading.Lock()

    def refresh(self, *, force: bool = False) -> List[EntityTemplate]:
        with self._lock:
            fresh = (
                self._loaded_at is not None
                and self._templates
                and (self._clock() - self._loaded_at) < self.ttl_seconds
            )
            if fresh and not force:
                return list(self._templates)
            try:
                templates = entity_templates_from_rows(self.sheet_client.fetch_rows(self.url))
            except Exception:
                logger.exception("Virus catalog refresh failed", extra={"url": self.url})
                return list(self._templates)
            self._templates = templates
            self._loaded_at = self._clock()
            logger.info("Virus catalog refreshed", extra={"count": len(templates)})
            return list(templates)

    def get(self, name: str) -> Optional[EntityTemplate]:
        wanted = str(name or "").strip().lower()
        if not wanted:
            return None
        for template in self.refresh():
            if template.name.lower() == wanted:
                return template
        return None

    def list_templates(self) -> List[EntityTemplate]:
        return self.refresh()


def reload_chip_catalog(sheet_client: TsvSheetClient, url: str, chip_store) -> int:
    """Fetch the chip sheet and upsert every row into ``chip_store``."""
    rows = sheet_client.fetch_rows(url)
    if not rows:
        raise ValueError("Chip sheet is empty")
    records = chip_records_from_rows(rows)
    count = chip_store.upsert_many(records)
    logger.info("Chip catalog reloaded", extra={"count": count})
    return count
