import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from phishdrill.core.ledger import Outcome, StrategyLedger
from phishdrill.schemas import EmailRecord

logger = logging.getLogger(__name__)


class InboxReader(Protocol):
    def load(self) -> List[EmailRecord]:
        ...


@dataclass
class LearningReport:
    emails: int
    bypassed: int
    clicked: int

    @property
    def bypass_rate(self) -> float:
        return self.bypassed / self.emails * 100 if self.emails else 0.0

    @property
    def click_rate(self) -> float:
        """Clicked as a share of bypassed"""
        return self.clicked / self.bypassed * 100 if self.bypassed else 0.0


def outcome_of(record: Optional[EmailRecord]) -> Outcome:
    # Not in the store yet: counts as a failed attempt
    if record is None:
        return Outcome(bypassed=False, clicked=False)
    return Outcome(bypassed=record.bypassed, clicked=record.has_click)


class OutcomeLearner:
    """Feeds observed bypass/click outcomes of deployed emails back into the ledger"""

    def __init__(self, ledger: StrategyLedger, inbox: InboxReader):
        self.ledger = ledger
        self.inbox = inbox

    def learn(self, deployed: List[EmailRecord]) -> Optional[LearningReport]:
        if not deployed:
            return None

        # Current stored state is authoritative, not the generation-time copy
        try:
            current: Dict[str, EmailRecord] = {e.id: e for e in self.inbox.load()}
        except Exception as e:
            logger.warning(f"Failed to read inbox for learning, skipping this cycle: {e}")
            return None

        bypassed = clicked = 0
        for email in deployed:
            outcome = outcome_of(current.get(email.id))
            self.ledger.record_email(email.strategy, email.target_persona_id, outcome)
            bypassed += outcome.bypassed
            clicked += outcome.clicked

        self.ledger.persist()

        report = LearningReport(emails=len(deployed), bypassed=bypassed, clicked=clicked)
        logger.info(
            f"Learned from cycle: {report.emails} emails, {report.bypassed} bypassed "
            f"({report.bypass_rate:.2f}%), {report.clicked} clicked "
            f"({report.click_rate:.2f}% of bypassed)"
        )
        return report
