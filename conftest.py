"""Shared fixtures for the PhishDrill test suite."""
import random

import pytest

from phishdrill.catalog import ATTACK_STRATEGIES, TARGET_PERSONAS
from phishdrill.core.ledger import InMemoryLedgerStore, LearningParams, StrategyLedger
from phishdrill.schemas import EmailRecord
from phishdrill.services.inbox_store import JsonInboxStore


@pytest.fixture
def strategies():
    return list(ATTACK_STRATEGIES)


@pytest.fixture
def personas():
    return list(TARGET_PERSONAS)


@pytest.fixture
def params():
    return LearningParams()


@pytest.fixture
def ledger_store():
    return InMemoryLedgerStore()


@pytest.fixture
def ledger(strategies, personas, ledger_store, params):
    return StrategyLedger(strategies, personas, ledger_store, params)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def inbox(tmp_path):
    return JsonInboxStore(str(tmp_path / "bank-inbox.json"))


@pytest.fixture
def make_email():
    """Factory for EmailRecords with sensible drill defaults."""
    def _make(**overrides):
        data = {
            "subject": "Quarterly access review",
            "content": "",
            "sender_address": "support@vmware-support.com",
            "target_persona_id": "1",
            "strategy": ATTACK_STRATEGIES[0],
        }
        data.update(overrides)
        return EmailRecord(**data)
    return _make
