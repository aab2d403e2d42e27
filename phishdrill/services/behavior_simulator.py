import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

from phishdrill.schemas import EmailRecord

logger = logging.getLogger(__name__)


@dataclass
class SimulationParams:
    # Probability an email is opened, by attack level
    p_open: Dict[str, float] = field(default_factory=lambda: {
        'basic': 0.25, 'advanced': 0.45, 'expert': 0.54,
    })
    # Probability a link is clicked once opened
    p_click_if_open: Dict[str, float] = field(default_factory=lambda: {
        'basic': 0.18, 'advanced': 0.35, 'expert': 0.54,
    })
    p_report_before_click: float = 0.08
    p_report_after_click: float = 0.12
    # Scanner/bot click on an unopened email
    p_phantom_click: float = 0.01
    # Exponential delay means, minutes
    mean_open_delay: float = 10
    mean_click_delay: float = 6
    mean_report_delay: float = 4


@dataclass
class BehaviorResult:
    opened: bool = False
    clicked: bool = False
    reported: bool = False
    phantom_click: bool = False
    open_delay: Optional[float] = None
    click_delay: Optional[float] = None
    report_delay: Optional[float] = None


def as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class UserBehaviorSimulator:
    """Probabilistic open/click/report for delivered drill emails"""

    def __init__(self, rng: random.Random = None, params: SimulationParams = None):
        self.rng = rng or random.Random()
        self.params = params or SimulationParams()

    def _delay(self, mean_minutes: float) -> float:
        return self.rng.expovariate(1.0 / mean_minutes)

    def simulate(self, attack_level: str) -> BehaviorResult:
        p = self.params
        p_open = p.p_open.get(attack_level, p.p_open['advanced'])
        p_click = p.p_click_if_open.get(attack_level, p.p_click_if_open['advanced'])
        result = BehaviorResult()

        if self.rng.random() < p_open:
            result.opened = True
            result.open_delay = self._delay(p.mean_open_delay)
            if self.rng.random() < p_click:
                result.clicked = True
                result.click_delay = self._delay(p.mean_click_delay)
                if self.rng.random() < p.p_report_after_click:
                    result.reported = True
                    result.report_delay = self._delay(p.mean_report_delay)
            elif self.rng.random() < p.p_report_before_click:
                result.reported = True
                result.report_delay = self._delay(p.mean_report_delay)
        elif self.rng.random() < p.p_phantom_click:
            result.phantom_click = True

        return result

    def apply(self, records: Iterable[EmailRecord]) -> int:
        """
        Simulate each delivered, not-yet-simulated record in place.

        User reports are recorded as `userReported` only; `status` stays
        owned by the classifier. Returns the number of records simulated.
        """
        count = 0
        for record in records:
            if record.status != 'delivered' or record.simulated:
                continue

            level = record.strategy.attack_level if record.strategy else 'advanced'
            result = self.simulate(level)
            sent = as_utc(record.created_at)
            events = list((record.model_extra or {}).get('events') or [])

            if result.opened:
                record.opened = True
                record.opened_at = sent + timedelta(minutes=result.open_delay)
                events.append({'event': 'opened', 'timestamp': record.opened_at.isoformat(), 'simulated': True})
            if result.clicked:
                record.clicked = True
                record.clicked_at = record.opened_at + timedelta(minutes=result.click_delay)
                events.append({'event': 'clicked', 'timestamp': record.clicked_at.isoformat(), 'simulated': True})
            if result.reported:
                record.user_reported = True
                events.append({'event': 'reported', 'simulated': True, 'afterClick': result.clicked})
            if result.phantom_click:
                events.append({'event': 'clicked', 'phantom': True, 'simulated': True})

            record.simulated = True
            record.events = events
            count += 1

            if result.clicked:
                logger.info(f"[Simulation] Click on email {record.id} ({level})")

        return count
