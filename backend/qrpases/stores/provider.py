"""
Dépendance FastAPI fournissant le backend de registres configuré (RECORD_STORE).
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from qrpases.config import settings
from qrpases.database import get_db
from qrpases.stores.sheet_store import SheetRecordStore
from qrpases.stores.sql_store import SqlRecordStore


def get_record_store(db: Session = Depends(get_db)):
    """Mode normalisé (SQL) par défaut ; mode compteur si RECORD_STORE=sheet."""
    if settings.RECORD_STORE == "sheet":
        store = SheetRecordStore.from_settings()
        try:
            yield store
        finally:
            store.close()
    else:
        yield SqlRecordStore(db)
