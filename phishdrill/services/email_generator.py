import logging
import random
from typing import Protocol

from phishdrill.catalog import SENDER_DOMAINS, SENDER_NAMES
from phishdrill.core.risk_classifier import QuickRiskScorer
from phishdrill.schemas import EmailRecord, Persona, Strategy

logger = logging.getLogger(__name__)


class EmailGenerator(Protocol):
    """Black-box text generator: one drill email per (persona, strategy)"""

    def generate(self, persona: Persona, strategy: Strategy) -> EmailRecord:
        ...


# Clearly-marked training templates; wording varies with sophistication only
TEMPLATES = {
    'basic': [
        ("Account notice", "Please log in to review a notice on your account."),
        ("Password expiry reminder", "Your password is due to be changed. Use the link to update it."),
    ],
    'advanced': [
        ("{department} access review", "As part of the quarterly {department} access review, "
                                        "please confirm your account details for {company}."),
        ("Vendor portal update", "The vendor portal used by {company} has moved. "
                                 "Please sign in once to keep your access."),
    ],
    'expert': [
        ("Follow-up: {role} change request", "Following up on the change request raised for the "
                                            "{role} team at {location}. Review the attached summary "
                                            "and approve before the window closes."),
        ("Licence renewal for {company}", "Your team's licence renewal for {company} needs sign-off "
                                          "from a {role}. The summary is available at the link below."),
    ],
}

URGENCY_PREFIX = {
    'low': '',
    'medium': '',
    'high': 'Action required: ',
    'critical': 'URGENT: ',
}

URGENCY_LINE = {
    'low': '',
    'medium': 'Please take care of this this week.',
    'high': 'Please complete this today.',
    'critical': 'This must be completed immediately.',
}


class DrillTemplateGenerator:
    """Offline generator producing benign, visibly labelled drill emails"""

    def __init__(self, rng: random.Random = None, scorer: QuickRiskScorer = None):
        self.rng = rng or random.Random()
        self.scorer = scorer or QuickRiskScorer()

    def sender_address(self) -> str:
        return f"{self.rng.choice(SENDER_NAMES)}@{self.rng.choice(SENDER_DOMAINS)}"

    def generate(self, persona: Persona, strategy: Strategy) -> EmailRecord:
        subject_tpl, body_tpl = self.rng.choice(TEMPLATES.get(strategy.attack_level, TEMPLATES['basic']))
        fields = persona.model_dump()
        subject = URGENCY_PREFIX.get(strategy.urgency_level, '') + subject_tpl.format(**fields)

        sender = self.sender_address()
        record = EmailRecord(
            subject=f"[SIMULATION] {subject}",
            sender_name="IT Operations Team",
            sender_address=sender,
            target_persona_id=persona.id,
            strategy=strategy,
        )
        url = f"https://{sender.split('@')[1]}/drill/{record.id}"

        record.content = "\n\n".join(line for line in (
            f"Dear {persona.name},",
            body_tpl.format(**fields),
            URGENCY_LINE.get(strategy.urgency_level, ''),
            url,
            "Regards,\nIT Operations Team",
            "This message is part of an authorised phishing-awareness drill.",
        ) if line)
        record.urls = [url]

        record.risk_score, record.risk_level = self.scorer.estimate(record.subject, record.content, strategy)
        logger.debug(f"Generated drill email {record.id} for {persona.name} ({strategy.key})")
        return record
