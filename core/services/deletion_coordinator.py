"""Commit of photos marked for deletion.

The provider deletes the whole batch or nothing. Only after it reports success
are the image cache and, through the session, the catalog, the triage store
and the cursor reconciled; on failure all of them are left exactly as they were.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from loguru import logger

from core.errors import DeletionFailed
from core.services.asset_catalog import AssetCatalog
from core.services.image_cache import ImageCache
from core.services.interfaces import AssetProvider, BatchDeleteResult, DeletionResult
from core.services.triage_session import TriageSession

AuditWriter = Callable[[list[str], DeletionResult], str | None]


class DeletionCoordinator:
    """Runs `commit()` against the provider and reconciles local state."""

    def __init__(
        self,
        provider: AssetProvider,
        catalog: AssetCatalog,
        session: TriageSession,
        cache: ImageCache | None = None,
        audit: AuditWriter | None = None,
    ) -> None:
        self._provider = provider
        self._catalog = catalog
        self._session = session
        self._cache = cache
        self._audit = audit

    def pending_ids(self, selected: Iterable[str] | None = None) -> list[str]:
        """Ids a commit would delete, in catalog order."""
        marked = [it.id for it in self._catalog.marked_items()]
        if selected is None:
            return marked
        wanted = set(selected)
        return [i for i in marked if i in wanted]

    async def commit(self, selected: Iterable[str] | None = None) -> DeletionResult:
        """Delete every marked photo, or only the marked ones among `selected`.

        Never raises for provider failures; the returned result carries a
        `DeletionFailed` instead and nothing local is changed.
        """
        ids = self.pending_ids(selected)
        if not ids:
            logger.debug("Commit skipped: nothing marked for deletion")
            return DeletionResult()

        logger.info("Deleting {} marked photo(s)", len(ids))
        try:
            outcome = await self._provider.delete_batch(list(ids))
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Provider delete raised: {}", ex)
            outcome = BatchDeleteResult(success=False, reason=str(ex))

        if not outcome.success:
            error = DeletionFailed(ids, outcome.reason)
            logger.error("Delete failed, nothing changed: {}", outcome.reason or "unknown reason")
            result = DeletionResult(error=error)
            result.log_path = self._write_audit(ids, result)
            return result

        if self._cache is not None:
            self._cache.discard(ids)
        await self._session.reconcile_removed(ids)

        result = DeletionResult(deleted_ids=list(ids))
        result.log_path = self._write_audit(ids, result)
        logger.info("Deleted {} photo(s); {} remain", len(ids), self._catalog.count)
        return result

    def _write_audit(self, ids: list[str], result: DeletionResult) -> str | None:
        if self._audit is None:
            return None
        try:
            return self._audit(ids, result)
        except (OSError, ValueError) as ex:
            logger.error("Write delete log failed: {}", ex)
            return None
