"""
Tests for the defense agent cycle: classify, block/report, stats.
"""
import json
import random
from unittest.mock import MagicMock

import pytest

from phishdrill.schemas import Classification, DefenseStats
from phishdrill.services.behavior_simulator import UserBehaviorSimulator
from phishdrill.services.defense_agent import DefenseAgent
from phishdrill.services.metrics import StatsFile


@pytest.fixture
def stats_path(tmp_path):
    return str(tmp_path / "defense-metrics.json")


@pytest.fixture
def agent(inbox, stats_path):
    return DefenseAgent(inbox, stats_file=StatsFile(stats_path, DefenseStats))


@pytest.fixture
def phish(make_email):
    return make_email(id="phish", urls=["https://evil.test/login"], sender_address="it@bank.com")


@pytest.fixture
def memo(make_email):
    return make_email(
        id="memo",
        subject="Board minutes",
        content="Dear team, please find the board minutes attached. Thank you and best regards, Sarah",
        sender_address="s.williams@securebank.com",
        urls=[],
    )


def test_mismatched_domain_is_blocked(agent, inbox, phish):
    inbox.save([phish])

    counts = agent.run_cycle()

    assert counts == {"analyzed": 1, "blocked": 1, "reported": 0, "bypassed": 0}
    stored = inbox.load()[0]
    assert stored.status == "blocked"
    assert stored.risk_level == "high"
    assert stored.classification.rule == "domain_mismatch"
    assert stored.auto_detected is True
    assert stored.detection_time >= 0


def test_professional_internal_mail_is_delivered(agent, inbox, memo):
    inbox.save([memo])

    counts = agent.run_cycle()

    assert counts["bypassed"] == 1
    stored = inbox.load()[0]
    assert stored.status == "delivered"
    assert stored.risk_level == "low"
    assert stored.classification.rule == "professional"
    assert stored.auto_detected is False


def test_stats_file_written(agent, inbox, stats_path, phish, memo):
    inbox.save([phish, memo])

    agent.run_cycle()

    with open(stats_path) as f:
        saved = json.load(f)
    assert saved["totalCycles"] == 1
    assert saved["totalEmailsAnalyzed"] == 2
    assert saved["highRiskBlocked"] == 1
    assert saved["lowRiskAllowed"] == 1
    assert saved["detectionRate"] == 50.0
    assert saved["meanConfidence"] == 80.0
    assert sorted(saved["processedEmailIds"]) == ["memo", "phish"]
    assert saved["performanceHistory"][0]["analyzed"] == 2


def test_second_cycle_analyses_nothing(agent, inbox, phish, memo):
    inbox.save([phish, memo])
    agent.run_cycle()

    assert agent.run_cycle()["analyzed"] == 0
    assert agent.stats.total_cycles == 2
    assert agent.stats.total_emails_analyzed == 2


def test_processed_ids_survive_restart(inbox, stats_path, memo):
    inbox.save([memo])
    DefenseAgent(inbox, stats_file=StatsFile(stats_path, DefenseStats)).run_cycle()

    # Strip the verdict so only the processed-id set keeps it from being re-analysed
    records = inbox.load()
    records[0].classification = None
    inbox.save(records)

    restarted = DefenseAgent(inbox, stats_file=StatsFile(stats_path, DefenseStats))
    assert restarted.run_cycle()["analyzed"] == 0
    assert restarted.stats.total_cycles == 2


def test_unreadable_inbox_returns_none(agent, inbox, stats_path):
    with open(inbox.path, "w") as f:
        f.write("{broken")

    assert agent.run_cycle() is None
    assert agent.stats.total_cycles == 0


def test_classifier_error_skips_only_that_email(inbox, make_email):
    inbox.save([make_email(id="a"), make_email(id="b")])
    classify = MagicMock(side_effect=[
        RuntimeError("boom"),
        Classification(risk_level="medium", risk_score=50, confidence=0.65, reasoning="test"),
    ])
    agent = DefenseAgent(inbox, classify=classify)

    counts = agent.run_cycle()

    assert counts["analyzed"] == 1
    assert counts["reported"] == 1
    stored = {r.id: r for r in inbox.load()}
    assert stored["a"].classification is None
    assert stored["b"].status == "reported"
    assert agent.processed_ids == {"b"}


def test_simulator_runs_on_delivered_mail(inbox, phish, memo):
    inbox.save([phish, memo])
    agent = DefenseAgent(inbox, simulator=UserBehaviorSimulator(random.Random(3)))

    agent.run_cycle()

    stored = {r.id: r for r in inbox.load()}
    assert stored["memo"].simulated is True
    assert stored["phish"].simulated is False


def test_start_stops_on_keyboard_interrupt(agent, monkeypatch):
    sleep = MagicMock(side_effect=KeyboardInterrupt)
    monkeypatch.setattr("phishdrill.services.defense_agent.time.sleep", sleep)

    agent.start()

    assert agent.running is False
    assert agent.stats.total_cycles == 1


def test_cycle_keeps_entries_it_cannot_parse(agent, inbox, memo):
    foreign = [{"id": "dash-1", "riskLevel": "severe"}, {"id": "dash-2", "urls": 12}]
    with open(inbox.path, "w") as f:
        json.dump([memo.to_wire()] + foreign, f)

    assert agent.run_cycle()["analyzed"] == 1

    with open(inbox.path) as f:
        stored = json.load(f)
    assert [e["id"] for e in stored] == ["memo", "dash-1", "dash-2"]
    assert stored[1:] == foreign
