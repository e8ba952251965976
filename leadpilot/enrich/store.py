"""Durable storage for the active enrichment job of each parent resource."""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from leadpilot.config import settings
from leadpilot.db.models import StoredValue
from leadpilot.db.session import engine as default_engine, init_db
from leadpilot.enrich.errors import StoreError
from leadpilot.enrich.models import EnrichmentJob

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SqlKeyValueStore:
    """Key/value records in the ``kv_store`` table of any SQLAlchemy database."""

    def __init__(self, engine=None) -> None:
        self.engine = engine or default_engine
        self._session_factory = sessionmaker(bind=self.engine)
        try:
            init_db(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Cannot initialise job store: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        session = self._session_factory()
        try:
            row = session.get(StoredValue, key)
            return row.value if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc
        finally:
            session.close()

    def set(self, key: str, value: str) -> None:
        session = self._session_factory()
        try:
            session.merge(StoredValue(key=key, value=value))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            session.close()

    def delete(self, key: str) -> None:
        session = self._session_factory()
        try:
            session.query(StoredValue).filter(StoredValue.key == key).delete(synchronize_session=False)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            session.close()


class JobStore:
    """Persists one ``EnrichmentJob`` per parent id as JSON.

    Reads are defensive: the store is consulted to recover a job orphaned by a
    restart, so anything unreadable is reported as "no job".
    """

    def __init__(self, backend: KeyValueStore, key_prefix: str | None = None) -> None:
        self.backend = backend
        self.key_prefix = settings.JOB_STORE_KEY_PREFIX if key_prefix is None else key_prefix

    def key(self, parent_id: str) -> str:
        return f"{self.key_prefix}{parent_id}"

    def save(self, parent_id: str, job: EnrichmentJob) -> None:
        try:
            self.backend.set(self.key(parent_id), json.dumps(job.to_dict()))
        except StoreError as exc:
            logger.error("job_store.save_failed", extra={"parent_id": parent_id, "error": exc.message})

    def load(self, parent_id: str) -> Optional[EnrichmentJob]:
        try:
            raw = self.backend.get(self.key(parent_id))
        except StoreError as exc:
            logger.error("job_store.load_failed", extra={"parent_id": parent_id, "error": exc.message})
            return None
        if raw is None:
            return None

        try:
            return EnrichmentJob.from_dict(json.loads(raw), parent_id=parent_id)
        except (ValueError, TypeError, KeyError, OverflowError) as exc:
            logger.warning("job_store.corrupt_entry", extra={"parent_id": parent_id, "error": str(exc)})
            return None

    def clear(self, parent_id: str) -> None:
        try:
            self.backend.delete(self.key(parent_id))
        except StoreError as exc:
            logger.error("job_store.clear_failed", extra={"parent_id": parent_id, "error": exc.message})
