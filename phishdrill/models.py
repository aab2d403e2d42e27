from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone
from phishdrill.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class LedgerSnapshot(Base):
    """Single-row table holding the whole ledger blob"""
    __tablename__ = "ledger_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, index=True, default="default")

    # Wire-shaped ledger: strategyStats / personaStats / comboStats / learningParams
    state = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
