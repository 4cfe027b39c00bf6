"""
store/sql_store.py — Document store backed by the `documents` table

Each collection is a single JSON payload row. Reads and writes move the
whole payload; the row is upserted on every replace.

Business Rules:
- Blocking SQLAlchemy work runs in the default executor so the event loop
  (and the operation lock holder) is never blocked
- A database error on read raises StoreReadFailure
- A database error on write is logged, rolled back and reported as False

Called by: main.py (store factory), tests
Depends on: database.py (SessionLocal), models/document.py
"""

import asyncio
import copy
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreReadFailure
from ..models import Document
from .base import RecordStore

log = logging.getLogger(__name__)


class SqlDocumentStore(RecordStore):
    def __init__(self, session_factory=None):
        if session_factory is None:
            from ..database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def fetch(self, collection: str) -> list[dict] | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_sync, collection)

    async def replace(self, collection: str, records: list[dict]) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._replace_sync, collection, records)

    def _fetch_sync(self, collection: str) -> list[dict] | None:
        db = self._session_factory()
        try:
            doc = db.get(Document, collection)
            if doc is None:
                return None
            # Callers own their copy; the ORM row must not be mutated in place
            return copy.deepcopy(list(doc.payload or []))
        except SQLAlchemyError as e:
            log.error("Document read failed for %s: %s", collection, e)
            raise StoreReadFailure(f"Could not read {collection}") from e
        finally:
            db.close()

    def _replace_sync(self, collection: str, records: list[dict]) -> bool:
        db = self._session_factory()
        try:
            doc = db.get(Document, collection)
            if doc is None:
                doc = Document(name=collection)
                db.add(doc)
            doc.payload = list(records)
            doc.record_count = len(records)
            db.commit()
            log.debug("Document %s replaced (%d records)", collection, len(records))
            return True
        except SQLAlchemyError as e:
            db.rollback()
            log.error("Document write failed for %s: %s", collection, e)
            return False
        finally:
            db.close()
