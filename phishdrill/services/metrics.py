import json
import logging
import os
from typing import Dict, Iterable, Type, TypeVar

from pydantic import BaseModel, ValidationError

from phishdrill.schemas import DefenseMetrics, EmailRecord, InboxMetrics, utcnow
from phishdrill.services.inbox_store import atomic_write_json

logger = logging.getLogger(__name__)

PERFORMANCE_HISTORY_LIMIT = 1000

StatsT = TypeVar("StatsT", bound=BaseModel)


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def compute_inbox_metrics(records: Iterable[EmailRecord]) -> InboxMetrics:
    """Offense view: clicks are counted among bypassed emails only"""
    records = list(records)
    total = len(records)
    detected = sum(1 for r in records if not r.bypassed)
    bypassed = total - detected
    clicked = sum(1 for r in records if r.bypassed and r.has_click)

    return InboxMetrics(
        total_emails=total,
        detected=detected,
        bypassed=bypassed,
        emails_clicked=clicked,
        detection_rate=_pct(detected, total),
        bypass_rate=_pct(bypassed, total),
        click_rate=_pct(clicked, bypassed),
    )


def compute_defense_metrics(records: Iterable[EmailRecord]) -> DefenseMetrics:
    records = list(records)
    total = len(records)
    detected = [r for r in records if r.status in ("blocked", "reported")]
    delivered = [r for r in records if r.status == "delivered"]

    timed = [r.detection_time for r in detected if r.detection_time is not None]
    leaked = [r.risk_score for r in delivered if r.risk_score is not None]
    confidences = [r.classification.confidence for r in records if r.classification is not None]

    return DefenseMetrics(
        detection_rate=_pct(len(detected), total),
        bypass_rate=_pct(len(delivered), total),
        avg_response_time=sum(timed) / len(timed) if timed else 0.0,
        avg_leakage_risk=sum(leaked) / len(leaked) if leaked else 0.0,
        mean_confidence=round(sum(confidences) / len(confidences) * 100, 1) if confidences else 0.0,
    )


def track_cycle(stats, counts: Dict[str, int], **details):
    """
    Per-day tallies plus one performance record for a finished cycle.

    `stats` is a DefenseStats/OffenseStats; the history keeps the last
    PERFORMANCE_HISTORY_LIMIT records.
    """
    now = utcnow()
    stats.total_cycles += 1
    stats.last_cycle_time = now

    today = now.date().isoformat()
    day = stats.cycles_by_day.setdefault(today, {"cycles": 0})
    day["cycles"] = day.get("cycles", 0) + 1
    for name, value in counts.items():
        day[name] = day.get(name, 0) + value

    record = {"timestamp": now.isoformat(), "cycleNumber": stats.total_cycles}
    record.update(counts)
    record.update(details)
    stats.performance_history.append(record)
    if len(stats.performance_history) > PERFORMANCE_HISTORY_LIMIT:
        stats.performance_history = stats.performance_history[-PERFORMANCE_HISTORY_LIMIT:]


class StatsFile:
    """Agent stats blob merged from / flushed to a JSON metrics file"""

    def __init__(self, path: str, model: Type[StatsT]):
        self.path = path
        self.model = model

    def load(self) -> StatsT:
        if not os.path.exists(self.path):
            return self.model()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                saved = json.load(f)
            if not isinstance(saved, dict):
                raise ValueError("metrics file is not a JSON object")
            # Merge: saved keys override fresh defaults
            merged = self.model().model_dump(by_alias=True)
            merged.update(saved)
            stats = self.model.model_validate(merged)
            logger.info(f"Loaded metrics: {getattr(stats, 'total_cycles', 0)} cycles from {self.path}")
            return stats
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load metrics from {self.path}: {e}")
            return self.model()

    def save(self, stats) -> bool:
        try:
            atomic_write_json(self.path, stats.to_wire())
            return True
        except OSError as e:
            logger.error(f"Failed to save metrics to {self.path}: {e}")
            return False
