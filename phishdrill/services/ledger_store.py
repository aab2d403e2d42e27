import json
import logging
import os
import shutil
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from phishdrill.schemas import LedgerState
from phishdrill.services.inbox_store import atomic_write_json

logger = logging.getLogger(__name__)


class LedgerStoreError(Exception):
    """Ledger blob could not be read, decoded or written"""


class JsonLedgerStore:
    """Flat-file ledger: the previous version is copied to <path>.backup before each write"""

    def __init__(self, path: str):
        self.path = path
        self.backup_path = f"{path}.backup"

    def load(self) -> Optional[LedgerState]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return LedgerState.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            raise LedgerStoreError(f"Cannot load ledger {self.path}: {e}") from e

    def save(self, state: LedgerState) -> None:
        try:
            if os.path.exists(self.path):
                shutil.copyfile(self.path, self.backup_path)
            atomic_write_json(self.path, state.to_wire())
        except OSError as e:
            raise LedgerStoreError(f"Cannot save ledger {self.path}: {e}") from e
        logger.debug(f"Saved learned patterns to {self.path}")


class SqlLedgerStore:
    """Ledger blob in the single-row `ledger_snapshots` table"""

    def __init__(self, session_factory, name: str = "default"):
        self.session_factory = session_factory
        self.name = name

    def load(self) -> Optional[LedgerState]:
        from phishdrill.models import LedgerSnapshot

        db = self.session_factory()
        try:
            row = db.query(LedgerSnapshot).filter(LedgerSnapshot.name == self.name).first()
            if row is None:
                return None
            return LedgerState.model_validate(row.state)
        except (SQLAlchemyError, ValidationError) as e:
            raise LedgerStoreError(f"Cannot load ledger snapshot '{self.name}': {e}") from e
        finally:
            db.close()

    def save(self, state: LedgerState) -> None:
        from phishdrill.models import LedgerSnapshot

        db = self.session_factory()
        try:
            row = db.query(LedgerSnapshot).filter(LedgerSnapshot.name == self.name).first()
            if row is None:
                row = LedgerSnapshot(name=self.name, state=state.to_wire())
                db.add(row)
            else:
                row.state = state.to_wire()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise LedgerStoreError(f"Cannot save ledger snapshot '{self.name}': {e}") from e
        finally:
            db.close()


def create_ledger_store(backend: str = None):
    """Store for the configured LEDGER_BACKEND"""
    from phishdrill.config import settings

    backend = backend or settings.LEDGER_BACKEND
    if backend == "sql":
        from phishdrill.database import SessionLocal, init_db

        os.makedirs(settings.DATA_DIR, exist_ok=True)
        init_db()
        return SqlLedgerStore(SessionLocal)
    return JsonLedgerStore(settings.LEDGER_FILE)
