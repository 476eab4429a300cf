"""
Template cache: resolves template ids to validated records.

One instance per process, created explicitly and shared by every session.
Records are cached only after validation, so a malformed or inactive response
is never served twice. The entry table is replaced wholesale on every write;
readers never observe a half-updated table.
"""

import asyncio
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from letter_stream.application.ports import TemplateSourcePort
from letter_stream.domain.entities.template import TemplateRecord
from letter_stream.domain.exceptions import (
    TemplateCacheClosedError,
    TemplateInvalidError,
)
from letter_stream.infra.config.logging_config import get_logger
from letter_stream.infra.metrics import record_cache_lookup


class TemplateSourceMode(str, Enum):
    """Which source is authoritative for templates, fixed at construction."""

    REMOTE = "remote"
    STATIC_FALLBACK = "static"


class TemplateCache:
    def __init__(
        self,
        source_mode: TemplateSourceMode,
        remote_source: Optional[TemplateSourcePort] = None,
        static_source: Optional[TemplateSourcePort] = None,
    ):
        """
        Initialize the cache.

        Args:
            source_mode: REMOTE fetches from the backend, STATIC_FALLBACK
                serves the built-in prompt table
            remote_source: Backend template source
            static_source: Built-in template source

        Raises:
            ValueError: If the source required by ``source_mode`` is missing
        """
        self.source_mode = TemplateSourceMode(source_mode)
        if self.source_mode is TemplateSourceMode.REMOTE:
            source = remote_source
        else:
            source = static_source
        if source is None:
            raise ValueError(
                f"Template source mode {self.source_mode.value} needs a matching source"
            )
        self._source: TemplateSourcePort = source

        self._entries: Dict[str, TemplateRecord] = {}
        self._inflight: Dict[str, "asyncio.Future[TemplateRecord]"] = {}
        # Fetches only write back if nothing was invalidated in the meantime
        self._epoch = 0
        self._generations: Dict[str, int] = {}
        self._torn_down = False
        self._log = get_logger("service.template_cache")

    async def init(self, preload: Iterable[str] = ()) -> None:
        """Start the cache, optionally warming it with known template ids."""
        self._torn_down = False
        for template_id in preload:
            await self.resolve(template_id)
        self._log.info(
            "template_cache.init",
            source_mode=self.source_mode.value,
            preloaded=len(self._entries),
        )

    async def resolve(self, template_id: str) -> TemplateRecord:
        """
        Resolve a template id to a validated record.

        Raises:
            TemplateNotFoundError: Unknown template id
            TemplateInvalidError: Malformed or inactive record
            TransportError: The source could not be reached
            TemplateCacheClosedError: The cache was torn down
        """
        if self._torn_down:
            raise TemplateCacheClosedError()

        record = self._entries.get(template_id)
        if record is not None:
            record_cache_lookup(hit=True)
            return record

        record_cache_lookup(hit=False)
        future = self._inflight.get(template_id)
        if future is None:
            future = asyncio.ensure_future(
                self._load(template_id, self._token(template_id))
            )
            self._inflight[template_id] = future
            future.add_done_callback(
                lambda f, tid=template_id: self._forget_inflight(tid, f)
            )

        # A caller being cancelled must not cancel the fetch other callers share
        return await asyncio.shield(future)

    def invalidate(self, template_id: Optional[str] = None) -> None:
        """Drop one entry, or every entry when no id is given."""
        if template_id is None:
            self._epoch += 1
            self._entries = {}
            self._inflight = {}
            self._log.info("template_cache.invalidate.all")
            return

        self._generations[template_id] = self._generations.get(template_id, 0) + 1
        if template_id in self._entries:
            entries = dict(self._entries)
            del entries[template_id]
            self._entries = entries
        self._inflight.pop(template_id, None)
        self._log.info("template_cache.invalidate", template_id=template_id)

    def note_version(self, template_id: str, version: str) -> bool:
        """
        React to a backend-signalled template version.

        Returns:
            bool: True if a cached record was stale and got dropped
        """
        record = self._entries.get(template_id)
        if record is None or record.version == str(version):
            return False
        self._log.info(
            "template_cache.version_changed",
            template_id=template_id,
            cached=record.version,
            signalled=str(version),
        )
        self.invalidate(template_id)
        return True

    def cached(self, template_id: str) -> Optional[TemplateRecord]:
        """Peek at the cache without fetching."""
        return self._entries.get(template_id)

    async def list_active(self, category: Optional[str] = None) -> List[TemplateRecord]:
        """
        List the templates a user can pick from, warming the cache with them.

        Malformed, inactive and user-disabled entries are left out rather
        than failing the whole listing.

        Args:
            category: Only return templates of this category

        Raises:
            TransportError: The source could not be reached
            TemplateCacheClosedError: The cache was torn down
        """
        if self._torn_down:
            raise TemplateCacheClosedError()

        epoch = self._epoch
        generations = dict(self._generations)
        payloads = await self._source.list_templates()

        records: List[TemplateRecord] = []
        fresh: Dict[str, TemplateRecord] = {}
        for payload in payloads:
            template_id = str(payload.get("id", "?"))
            if payload.get("isEnabledForUser") is False:
                continue
            try:
                record = TemplateRecord.from_payload(template_id, payload)
            except TemplateInvalidError as e:
                self._log.info(
                    "template_cache.list.skipped", template_id=template_id, reason=e.reason
                )
                continue
            records.append(record)
            # Entries invalidated during the fetch are not written back
            if self._generations.get(record.id, 0) == generations.get(record.id, 0):
                fresh[record.id] = record

        if fresh and self._epoch == epoch and not self._torn_down:
            self._entries = {**self._entries, **fresh}

        if category is not None:
            records = [r for r in records if r.category == category]
        return records

    async def teardown(self) -> None:
        """Cancel pending fetches and drop everything."""
        self._torn_down = True
        pending = list(self._inflight.values())
        self.invalidate()
        for future in pending:
            future.cancel()
        if pending:
            await asyncio.wait(pending)
        self._log.info("template_cache.teardown", cancelled=len(pending))

    def _token(self, template_id: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(template_id, 0)

    async def _load(self, template_id: str, token: Tuple[int, int]) -> TemplateRecord:
        payload = await self._source.fetch_template(template_id)
        record = TemplateRecord.from_payload(template_id, payload)

        if self._token(template_id) == token and not self._torn_down:
            self._entries = {**self._entries, template_id: record}
            self._log.debug(
                "template_cache.store", template_id=template_id, version=record.version
            )
        else:
            self._log.info("template_cache.store.skipped_stale", template_id=template_id)
        return record

    def _forget_inflight(
        self, template_id: str, future: "asyncio.Future[TemplateRecord]"
    ) -> None:
        if self._inflight.get(template_id) is future:
            del self._inflight[template_id]
        if not future.cancelled():
            # Mark the exception retrieved; awaiting callers still receive it
            future.exception()
