"""
services/import_service.py — Incremental Dolibarr → store import

Pulls draft orders from Dolibarr and appends the ones the shared store
does not know yet. Only ever adds: a record that vanished from Dolibarr is
counted as an orphan and logged, never deleted or flagged.

Flow (one run, under the operation lock):
  1. Fresh read of the store → known keys (soft-deleted included) and
     manual keys
  2. Page through the lightweight order listing until a short page or the
     page ceiling
  3. missing = listed − known; nothing missing → stop, no detail calls
  4. Fetch detail for the missing orders only, in small concurrent batches
     with a pause between batches; a failed detail is skipped
  5. Resolve authors, third parties and products (TTL-cached lookups,
     direct per-user fetch on a miss)
  6. Transform into OrderRecord (fresh id, PENDING / STUDY, imported)
  7. Re-read the store, drop anything another writer added meanwhile,
     write fresh ∪ truly_new
  8. Lock released whatever happened

Business Rules:
- A failed listing page is fatal for the run (ImportFailure)
- A failed detail/lookup call only skips that item
- A failed final write raises StoreWriteFailure; nothing was written
- Each run is recorded in sync_logs when a session factory is given

Called by: services/order_service.py (sync), scheduler.py
Depends on: connectors/dolibarr.py, store/base.py, cache/ttl_cache.py,
            locking.py, offers.py, utils/normalization.py
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from ..cache import TTLCache
from ..connectors.dolibarr import DolibarrConnector
from ..errors import ImportFailure, UpstreamFetchFailure
from ..locking import OperationLock
from ..offers import UNKNOWN_OFFER, offer_label
from ..schemas.orders import ActivationState, OrderRecord, ValidationState
from ..store.base import RecordStore, Snapshot, read_orders, write_orders
from ..utils import safe_int, utcnow
from ..utils.normalization import normalize_reference

log = logging.getLogger(__name__)

USERS_CACHE_KEY = "dolibarr:users"
PRODUCTS_CACHE_KEY = "dolibarr:products"
UNKNOWN_COMPANY = "Client Inconnu"


@dataclass
class ImportResult:
    status: str = "running"
    added: int = 0
    total: int = 0
    listed: int = 0
    missing: int = 0
    fetched: int = 0
    skipped: int = 0
    orphaned: int = 0
    manual: int = 0
    soft_deleted: int = 0
    raced: int = 0
    pages: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def counts(self) -> dict:
        return {
            "listed": self.listed,
            "missing": self.missing,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "added": self.added,
            "raced": self.raced,
            "orphaned": self.orphaned,
            "manual": self.manual,
            "soft_deleted": self.soft_deleted,
            "total": self.total,
        }


def record_keys(record: OrderRecord) -> set[str]:
    """Every normalized reference a stored record can be matched by."""
    keys = {
        normalize_reference(record.contract_ref),
        normalize_reference(record.external_ref),
    }
    keys.discard("")
    return keys


def snapshot_keys(snapshot: Snapshot) -> set[str]:
    keys: set[str] = set()
    for record in snapshot.records:
        keys |= record_keys(record)
    return keys


def _listing_keys(ref: dict) -> set[str]:
    keys = {normalize_reference(ref.get("contract_ref")), normalize_reference(ref.get("ref"))}
    keys.discard("")
    return keys


def _person_name(person: dict) -> str:
    return f"{person.get('firstname') or ''} {person.get('lastname') or ''}".strip()


class ImportService:
    def __init__(
        self,
        store: RecordStore,
        connector: DolibarrConnector,
        lock: OperationLock,
        cache: TTLCache | None = None,
        settings=None,
        session_factory=None,
        on_written: Callable[[Snapshot], None] | None = None,
        sleep=asyncio.sleep,
    ):
        if settings is None:
            from ..config import settings
        self.store = store
        self.connector = connector
        self.lock = lock
        self.cache = cache if cache is not None else TTLCache()
        self.settings = settings
        self.session_factory = session_factory
        self.on_written = on_written
        self._sleep = sleep

    @property
    def collection(self) -> str:
        return self.settings.orders_collection

    async def sync(self) -> int:
        """Run one import. Returns the number of orders added."""
        return (await self.run()).added

    async def run(self) -> ImportResult:
        async with self.lock.hold("import"):
            with logger.contextualize(sync_run=uuid.uuid4().hex[:8]):
                return await self._run_locked()

    async def _run_locked(self) -> ImportResult:
        started = utcnow()
        result = ImportResult()
        try:
            await self._import(result)
        except Exception as e:
            result.status = "error"
            result.errors.append(str(e))
            log.error("Dolibarr import failed: %s", e)
            raise
        else:
            result.status = "success"
        finally:
            finished = utcnow()
            result.duration_seconds = round((finished - started).total_seconds(), 1)
            log.info(
                "Dolibarr import %s in %.1fs — %s",
                result.status,
                result.duration_seconds,
                result.counts(),
            )
            await self._log_run(started, finished, result)
        return result

    # ── Steps ─────────────────────────────────────────────────────────

    async def _import(self, result: ImportResult) -> None:
        existing = await read_orders(self.store, self.collection)
        known = snapshot_keys(existing)
        manual_keys: set[str] = set()
        for record in existing.records:
            if record.manually_created:
                manual_keys |= record_keys(record)
            if record.validation_state == ValidationState.DELETED:
                result.soft_deleted += 1
        result.manual = sum(1 for r in existing.records if r.manually_created)
        log.info(
            "Store holds %d orders (%d soft-deleted, %d manual)",
            len(existing),
            result.soft_deleted,
            result.manual,
        )

        listed = await self._list_all_refs(result)
        result.listed = len(listed)

        listed_keys: set[str] = set()
        for ref in listed:
            listed_keys |= _listing_keys(ref)
        result.orphaned = self._count_orphans(existing, listed_keys, manual_keys)

        missing = self._missing_refs(listed, known)
        result.missing = len(missing)
        result.total = len(existing)
        if not missing:
            log.info("No new Dolibarr orders — nothing to import")
            return

        details = await self._fetch_details(missing, result)
        result.fetched = len(details)
        if not details:
            return

        users = await self._user_names()
        thirdparties = await self._thirdparties(details)
        products = await self._products()

        now = utcnow()
        transformed = [
            await self._transform(doc, users, thirdparties, products, now)
            for doc in details
        ]

        # Another writer may have added the same contract while we were on
        # the network: re-read and keep only what is still new
        fresh = await read_orders(self.store, self.collection)
        fresh_keys = snapshot_keys(fresh)
        truly_new = [o for o in transformed if not (record_keys(o) & fresh_keys)]
        result.raced = len(transformed) - len(truly_new)
        if result.raced:
            log.info("%d imported orders were added concurrently — dropped", result.raced)

        if not truly_new:
            result.total = len(fresh)
            return

        final = await write_orders(self.store, fresh.extend(truly_new))
        result.added = len(truly_new)
        result.total = len(final)
        if self.on_written is not None:
            self.on_written(final)

    async def _list_all_refs(self, result: ImportResult) -> list[dict]:
        page_size = self.settings.sync_page_size
        refs: list[dict] = []
        for page in range(self.settings.sync_max_pages):
            try:
                rows = await self.connector.list_order_refs(page, page_size)
            except UpstreamFetchFailure as e:
                raise ImportFailure(f"Dolibarr order listing failed: {e.message}") from e
            result.pages += 1
            log.debug("Dolibarr listing page %d: %d orders", page, len(rows))
            refs.extend(rows)
            if len(rows) < page_size:
                break
        else:
            log.warning(
                "Dolibarr listing stopped at the %d-page ceiling", self.settings.sync_max_pages
            )
        return refs

    @staticmethod
    def _missing_refs(listed: list[dict], known: set[str]) -> list[dict]:
        missing = []
        seen: set[str] = set()
        for ref in listed:
            keys = _listing_keys(ref)
            if not keys or keys & known or keys & seen:
                continue
            seen |= keys
            missing.append(ref)
        return missing

    @staticmethod
    def _count_orphans(existing: Snapshot, listed_keys: set[str], manual_keys: set[str]) -> int:
        """Imported, live orders Dolibarr no longer lists. Reported, never touched."""
        orphans = 0
        for record in existing.records:
            if record.validation_state == ValidationState.DELETED or record.manually_created:
                continue
            keys = record_keys(record)
            if keys & manual_keys:
                continue
            if not (keys & listed_keys):
                orphans += 1
        if orphans:
            log.info("%d orders no longer in Dolibarr — preserved", orphans)
        return orphans

    async def _fetch_details(self, missing: list[dict], result: ImportResult) -> list[dict]:
        size = max(1, self.settings.detail_batch_size)
        details: list[dict] = []
        batches = [missing[i:i + size] for i in range(0, len(missing), size)]
        for index, batch in enumerate(batches):
            log.debug("Detail batch %d/%d", index + 1, len(batches))
            fetched = await asyncio.gather(*[self._fetch_one(ref) for ref in batch])
            for doc in fetched:
                if doc is None:
                    result.skipped += 1
                else:
                    details.append(doc)
            if index < len(batches) - 1:
                await self._sleep(self.settings.detail_batch_pause)
        return details

    async def _fetch_one(self, ref: dict) -> dict | None:
        try:
            doc = await self.connector.get_order(ref["id"])
        except UpstreamFetchFailure as e:
            log.warning("Skipping Dolibarr order %s: %s", ref.get("ref"), e.message)
            return None
        if not isinstance(doc, dict):
            log.warning("Skipping Dolibarr order %s: unexpected body", ref.get("ref"))
            return None
        return doc

    # ── Lookups ───────────────────────────────────────────────────────

    async def _user_names(self) -> dict[str, str]:
        cached = self.cache.get(USERS_CACHE_KEY)
        if cached is not None:
            log.debug("Cache HIT: %s", USERS_CACHE_KEY)
            return dict(cached)
        try:
            users = await self.connector.list_users()
        except UpstreamFetchFailure as e:
            log.warning("Dolibarr user list unavailable: %s", e.message)
            return {}
        names: dict[str, str] = {}
        for user in users or []:
            for key in ("id", "rowid"):
                if user.get(key):
                    names[str(user[key])] = _person_name(user) or f"User {user[key]}"
        self.cache.set(USERS_CACHE_KEY, names, ttl=self.settings.users_cache_ttl_seconds)
        return dict(names)

    async def _author_name(self, user_id, users: dict[str, str]) -> str:
        if not user_id:
            return ""
        key = str(user_id)
        if key in users:
            return users[key]
        try:
            user = await self.connector.get_user(key)
        except UpstreamFetchFailure as e:
            log.debug("Author %s lookup failed: %s", key, e.message)
            return ""
        name = _person_name(user or {})
        if name:
            users[key] = name
            cached = self.cache.get(USERS_CACHE_KEY)
            if cached is not None:
                cached[key] = name
        return name

    async def _thirdparties(self, details: list[dict]) -> dict[str, dict]:
        socids = list(dict.fromkeys(str(d["socid"]) for d in details if d.get("socid")))
        size = max(1, self.settings.thirdparty_batch_size)
        batches = [socids[i:i + size] for i in range(0, len(socids), size)]
        found: dict[str, dict] = {}
        for index, batch in enumerate(batches):
            infos = await asyncio.gather(*[self._thirdparty(s) for s in batch])
            for socid, info in zip(batch, infos):
                if info is not None:
                    found[socid] = info
            if index < len(batches) - 1:
                await self._sleep(self.settings.thirdparty_batch_pause)
        return found

    async def _thirdparty(self, socid: str) -> dict | None:
        try:
            tp = await self.connector.get_thirdparty(socid)
        except UpstreamFetchFailure as e:
            log.warning("Third party %s lookup failed: %s", socid, e.message)
            return None
        representative = ""
        try:
            reps = await self.connector.get_representatives(socid)
            if reps:
                representative = _person_name(reps[0])
        except UpstreamFetchFailure as e:
            log.debug("Representatives of %s unavailable: %s", socid, e.message)
        return {
            "name": tp.get("name") or tp.get("nom") or "",
            "phone": tp.get("phone") or "",
            "town": tp.get("town") or tp.get("ville") or "",
            "state": tp.get("state") or tp.get("departement") or "",
            "representative": representative,
        }

    async def _products(self) -> dict[str, str]:
        cached = self.cache.get(PRODUCTS_CACHE_KEY)
        if cached is not None:
            log.debug("Cache HIT: %s", PRODUCTS_CACHE_KEY)
            return cached
        try:
            products = await self.connector.list_products()
        except UpstreamFetchFailure as e:
            log.warning("Dolibarr product list unavailable: %s", e.message)
            return {}
        labels = {
            str(p["id"]): p.get("label") or p.get("ref") or ""
            for p in products or []
            if p.get("id") is not None
        }
        self.cache.set(PRODUCTS_CACHE_KEY, labels, ttl=self.settings.products_cache_ttl_seconds)
        return labels

    # ── Transform ─────────────────────────────────────────────────────

    async def _transform(
        self,
        doc: dict,
        users: dict[str, str],
        thirdparties: dict[str, dict],
        products: dict[str, str],
        now: datetime,
    ) -> OrderRecord:
        ref = doc.get("ref") or ""
        extra = doc.get("array_options") or {}
        lines = doc.get("lines") or [{}]
        line = lines[0] or {}
        line_extra = line.get("array_options") or {}
        tp = thirdparties.get(str(doc.get("socid"))) or {}

        author_id = doc.get("user_author_id") or doc.get("fk_user_author")
        author = await self._author_name(author_id, users)
        author = author or tp.get("representative") or (f"ID:{author_id}" if author_id else "")

        offer = offer_label(line_extra.get("options_vad_vel"))
        if offer is None and line.get("fk_product"):
            offer = products.get(str(line["fk_product"])) or None
        offer = offer or UNKNOWN_OFFER

        created = safe_int(doc.get("date_creation"))
        submitted = datetime.fromtimestamp(created, tz=timezone.utc) if created else now

        return OrderRecord(
            id=f"DOLI-{uuid.uuid4()}",
            contract_ref=normalize_reference(extra.get("options_val_cont") or ref),
            external_ref=normalize_reference(ref) or None,
            submitted_at=submitted,
            entered_at=now,
            processed_at=now,
            sales_agent=normalize_reference(author),
            company_name=normalize_reference(tp.get("name") or UNKNOWN_COMPANY),
            phone=normalize_reference(tp.get("phone")),
            offer=normalize_reference(offer),
            city=normalize_reference(line_extra.get("options_vad_adr") or tp.get("town")),
            validation_state=ValidationState.PENDING,
            activation_state=ActivationState.STUDY,
            is_confirmed=False,
            provider="",
            landline_number=normalize_reference(extra.get("options_ndelignefixe")),
            serial_number=normalize_reference(extra.get("options_esnicc")),
            manually_created=False,
        )

    # ── Sync log ──────────────────────────────────────────────────────

    async def _log_run(self, started: datetime, finished: datetime, result: ImportResult) -> None:
        if self.session_factory is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_log, started, finished, result)

    def _write_log(self, started: datetime, finished: datetime, result: ImportResult) -> None:
        from ..models import SyncLog

        db = self.session_factory()
        try:
            db.add(
                SyncLog(
                    source="dolibarr",
                    status=result.status,
                    started_at=started,
                    finished_at=finished,
                    duration_seconds=result.duration_seconds,
                    row_counts=result.counts(),
                    errors=result.errors or None,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            log.exception("Failed to write sync log")
        finally:
            db.close()
