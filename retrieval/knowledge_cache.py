"""Per-tenant knowledge cache with stale-while-revalidate refresh."""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future, wait
from typing import Optional, List, Dict, Iterable

from rapidfuzz import fuzz, process, utils

from errors import KnowledgeCacheMiss, KnowledgeSourceError
from schemas.knowledge import KnowledgeItem, KnowledgeSourceType
from .sheet_sources import KnowledgeSource

logger = logging.getLogger(__name__)


class _TenantEntry:
    def __init__(self):
        self.synced: List[KnowledgeItem] = []
        self.manual: Dict[str, KnowledgeItem] = {}
        self.loaded_at: Optional[float] = None  # monotonic time of the last refresh attempt
        self.last_error: Optional[str] = None
        self.pending: Optional[Future] = None

    def items(self) -> List[KnowledgeItem]:
        manual_keys = set(self.manual)
        return [i for i in self.synced if i.key not in manual_keys] + list(self.manual.values())


class KnowledgeCache:
    """
    Read-through cache of tenant knowledge items.

    ``lookup`` never blocks on the source and never raises: a missing or
    stale entry schedules a background refresh and the call returns whatever
    is cached right now. Failed refreshes keep the last good items.
    """

    def __init__(
        self,
        source: Optional[KnowledgeSource] = None,
        refresh_interval_s: float = 30.0,
        max_workers: int = 2,
        min_score: float = 0.6
    ):
        """
        Initialize knowledge cache.

        Args:
            source: Where tenant sheets come from (None: only items given to ``put``)
            refresh_interval_s: Age after which an entry is refreshed in the background
            max_workers: Background refresh threads
            min_score: Minimum match score (0-1) for ``lookup``
        """
        self.source = source
        self.refresh_interval_s = refresh_interval_s
        self.min_score = min_score
        self._entries: Dict[str, _TenantEntry] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="knowledge-refresh")

    def lookup(self, tenant_id: str, query: str, limit: int = 5) -> List[KnowledgeItem]:
        """
        Find the tenant's items that best match a query.

        Args:
            tenant_id: Tenant
            query: Customer message or search text
            limit: Maximum items returned

        Returns:
            Matching items, best first (possibly empty)
        """
        self._schedule_if_stale(tenant_id)
        try:
            items = self.items(tenant_id)
        except KnowledgeCacheMiss:
            logger.debug(f"No knowledge cached yet for tenant {tenant_id}")
            return []
        return self._rank(query, items, limit)

    def items(self, tenant_id: str) -> List[KnowledgeItem]:
        """
        All cached items for a tenant.

        Raises:
            KnowledgeCacheMiss: If nothing is cached for the tenant
        """
        with self._lock:
            entry = self._entries.get(tenant_id)
            items = entry.items() if entry else []
        if not items:
            raise KnowledgeCacheMiss(f"No knowledge cached for tenant {tenant_id}")
        return items

    def is_cached(self, tenant_id: str) -> bool:
        """Whether any items are cached for the tenant."""
        with self._lock:
            entry = self._entries.get(tenant_id)
            return bool(entry and (entry.synced or entry.manual))

    def put(self, tenant_id: str, items: Iterable[KnowledgeItem]):
        """
        Add items from the sync collaborator.

        Manual items replace same-key items and survive later refreshes;
        synced items are merged into the current synced set by key.
        """
        with self._lock:
            entry = self._entries.setdefault(tenant_id, _TenantEntry())
            synced = {i.key: i for i in entry.synced}
            count = 0
            for item in items:
                if item.tenant_id != tenant_id:
                    logger.warning(f"Skipping item '{item.key}' for tenant {item.tenant_id} put under {tenant_id}")
                    continue
                if item.source == KnowledgeSourceType.MANUAL:
                    entry.manual[item.key] = item
                else:
                    synced[item.key] = item
                count += 1
            entry.synced = list(synced.values())
        logger.info(f"Stored {count} knowledge item(s) for tenant {tenant_id}")

    def refresh(self, tenant_id: str) -> bool:
        """
        Synchronously reload the tenant's sheet.

        Returns:
            True if the sheet was fetched and swapped in
        """
        if self.source is None or not self.source.has_tenant(tenant_id):
            return False

        started = time.monotonic()
        try:
            items = self.source.fetch(tenant_id)
        except KnowledgeSourceError as e:
            with self._lock:
                entry = self._entries.setdefault(tenant_id, _TenantEntry())
                entry.loaded_at = time.monotonic()
                entry.last_error = str(e)
            logger.warning(f"Knowledge refresh failed, serving cached items: {e}")
            return False

        with self._lock:
            entry = self._entries.setdefault(tenant_id, _TenantEntry())
            changed = [(i.key, i.value) for i in entry.synced] != [(i.key, i.value) for i in items]
            entry.synced = items
            entry.loaded_at = time.monotonic()
            entry.last_error = None

        elapsed_ms = (time.monotonic() - started) * 1000
        if changed:
            logger.info(f"Knowledge for tenant {tenant_id} refreshed: {len(items)} items ({elapsed_ms:.0f}ms)")
        else:
            logger.debug(f"Knowledge for tenant {tenant_id} unchanged ({elapsed_ms:.0f}ms)")
        return True

    def invalidate(self, tenant_id: Optional[str] = None):
        """Mark one tenant (or all) stale so the next lookup refreshes."""
        with self._lock:
            entries = [self._entries.get(tenant_id)] if tenant_id else list(self._entries.values())
            for entry in entries:
                if entry is not None:
                    entry.loaded_at = None

    def last_error(self, tenant_id: str) -> Optional[str]:
        """Error from the tenant's most recent failed refresh, if any."""
        with self._lock:
            entry = self._entries.get(tenant_id)
            return entry.last_error if entry else None

    def wait_for_refreshes(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for scheduled background refreshes.

        Returns:
            True if all finished within the timeout
        """
        with self._lock:
            pending = [e.pending for e in self._entries.values() if e.pending is not None]
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self):
        """Stop the background refresh pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _schedule_if_stale(self, tenant_id: str):
        if self.source is None or not self.source.has_tenant(tenant_id):
            return
        now = time.monotonic()
        with self._lock:
            entry = self._entries.setdefault(tenant_id, _TenantEntry())
            if entry.pending is not None and not entry.pending.done():
                return
            if entry.loaded_at is not None and now - entry.loaded_at < self.refresh_interval_s:
                return
            try:
                entry.pending = self._executor.submit(self._background_refresh, tenant_id)
            except RuntimeError:
                # Pool already shut down
                return
        logger.debug(f"Scheduled knowledge refresh for tenant {tenant_id}")

    def _background_refresh(self, tenant_id: str):
        try:
            self.refresh(tenant_id)
        except Exception as e:
            logger.error(f"Unexpected error refreshing knowledge for tenant {tenant_id}: {e}", exc_info=True)

    def _rank(self, query: str, items: List[KnowledgeItem], limit: int) -> List[KnowledgeItem]:
        """Fuzzy-match the query against each item's key and value."""
        if not query or not query.strip() or limit <= 0:
            return []

        choices = [f"{item.key} {item.value}" for item in items]
        results = process.extract(
            query,
            choices,
            scorer=fuzz.WRatio,
            processor=utils.default_process,
            limit=limit,
            score_cutoff=self.min_score * 100
        )
        # Results are (choice, score, index); stable order for equal scores
        ranked = sorted(results, key=lambda r: (-r[1], r[2]))
        return [items[index] for _, _, index in ranked]
