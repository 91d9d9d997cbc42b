"""
Salt Stores

Reference implementations of the salt store collaborator.

A salt store keeps exactly one salt per scope identifier:
    - store(scope_id, salt): persist (overwrites any previous salt)
    - retrieve(scope_id): current salt, or None
    - complete(scope_id): remove the salt (idempotent)

The lifecycle never retries a failing store call; retry policy belongs here.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Protocol, runtime_checkable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from capurl.core.database.models import SignedUrlSalt

logger = logging.getLogger(__name__)


@runtime_checkable
class SaltStore(Protocol):
    """Protocol for salt store collaborators."""

    async def store(self, scope_id: str, salt: str) -> None:
        ...

    async def retrieve(self, scope_id: str) -> Optional[str]:
        ...

    async def complete(self, scope_id: str) -> None:
        ...


class InMemorySaltStore:
    """
    Process-local salt store.

    Thread-safe for concurrent access. Salts are lost on restart, which
    invalidates every outstanding URL.
    """

    def __init__(self):
        self._salts: Dict[str, str] = {}
        self._lock = threading.RLock()

    async def store(self, scope_id: str, salt: str) -> None:
        with self._lock:
            self._salts[scope_id] = salt

    async def retrieve(self, scope_id: str) -> Optional[str]:
        with self._lock:
            return self._salts.get(scope_id)

    async def complete(self, scope_id: str) -> None:
        with self._lock:
            self._salts.pop(scope_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._salts)


class SqlSaltStore:
    """
    SQLAlchemy-backed salt store (table: signed_url_salts).

    Blocking session work runs in a worker thread so the event loop is not
    held up. Database errors propagate unchanged.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _upsert(db: Session, scope_id: str, salt: str) -> None:
        row = db.get(SignedUrlSalt, scope_id)
        if row is None:
            db.add(SignedUrlSalt(scope_id=scope_id, salt=salt))
        else:
            row.salt = salt
            row.created_at = datetime.utcnow()
        db.commit()

    def _store_sync(self, scope_id: str, salt: str) -> None:
        """
        Insert or overwrite the salt for scope_id.

        Handles concurrent first stores for the same scope by catching
        IntegrityError and overwriting the row the other writer created.
        """
        with self._session_factory() as db:
            try:
                self._upsert(db, scope_id, salt)
            except IntegrityError:
                # Race condition: another store inserted the row first
                db.rollback()
                logger.debug(f"Concurrent first store for scope {scope_id}, overwriting")
                self._upsert(db, scope_id, salt)

    def _retrieve_sync(self, scope_id: str) -> Optional[str]:
        with self._session_factory() as db:
            row = db.get(SignedUrlSalt, scope_id)
            return row.salt if row else None

    def _complete_sync(self, scope_id: str) -> None:
        with self._session_factory() as db:
            deleted = db.query(SignedUrlSalt).filter(SignedUrlSalt.scope_id == scope_id).delete()
            db.commit()
        if not deleted:
            logger.debug(f"No salt to remove for scope {scope_id}")

    async def store(self, scope_id: str, salt: str) -> None:
        await asyncio.to_thread(self._store_sync, scope_id, salt)

    async def retrieve(self, scope_id: str) -> Optional[str]:
        return await asyncio.to_thread(self._retrieve_sync, scope_id)

    async def complete(self, scope_id: str) -> None:
        await asyncio.to_thread(self._complete_sync, scope_id)
