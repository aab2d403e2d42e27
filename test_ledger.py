"""
Tests for the strategy ledger: default seeding, running-mean and decay
updates, persistence through the store seam, and summaries.
"""
from unittest.mock import MagicMock

import pytest

from phishdrill.core.ledger import (
    InMemoryLedgerStore,
    LearningParams,
    Outcome,
    StrategyLedger,
    combo_key,
)
from phishdrill.schemas import LedgerState

BYPASSED = Outcome(bypassed=True, clicked=False)
BLOCKED = Outcome(bypassed=False, clicked=False)
CLICKED = Outcome(bypassed=True, clicked=True)


class TestDefaults:

    def test_strategy_defaults_follow_attack_level(self, ledger, strategies):
        expected = {"basic": 20, "advanced": 30, "expert": 40}
        for strategy in strategies:
            stats = ledger.strategy_stats(strategy)
            assert stats.attempts == 0
            assert stats.score == expected[strategy.attack_level]
            assert stats.bypass_rate == expected[strategy.attack_level]

    def test_persona_defaults_follow_access_level(self, ledger):
        assert ledger.persona_stats("1").vulnerability_score == 40   # High
        assert ledger.persona_stats("3").vulnerability_score == 50   # Critical

    def test_stored_entries_are_not_overwritten(self, strategies, personas):
        state = LedgerState.model_validate({
            "personaStats": {"1": {"attempts": 7, "bypassRate": 12.5, "vulnerabilityScore": 9.0}},
        })
        ledger = StrategyLedger(strategies, personas, InMemoryLedgerStore(state))

        assert ledger.persona_stats("1").attempts == 7
        assert ledger.persona_stats("1").vulnerability_score == 9.0
        assert ledger.persona_stats("2").vulnerability_score == 40
        assert len(ledger.state.strategy_stats) == len(strategies)

    def test_legacy_keys_are_accepted(self, strategies, personas):
        state = LedgerState.model_validate({
            "strategyScores": {strategies[0].key: {"attempts": 4, "bypassRate": 50, "score": 30}},
            "personaVulnerabilities": {"2": {"attempts": 2, "vulnerabilityScore": 11}},
            "combinations": {combo_key(strategies[0], "2"): {"attempts": 2}},
        })
        ledger = StrategyLedger(strategies, personas, InMemoryLedgerStore(state))

        assert ledger.strategy_stats(strategies[0]).attempts == 4
        assert ledger.persona_stats("2").vulnerability_score == 11
        assert ledger.combo_stats(strategies[0], "2").attempts == 2

    def test_unreadable_store_falls_back_to_defaults(self, strategies, personas):
        store = MagicMock()
        store.load.side_effect = RuntimeError("disk on fire")

        ledger = StrategyLedger(strategies, personas, store)

        assert ledger.strategy_stats(strategies[2]).score == 40
        assert ledger.state.combo_stats == {}


class TestRecord:

    def test_attempts_and_rate_bounds(self, ledger, strategies):
        outcomes = [BYPASSED, BLOCKED, CLICKED, BLOCKED, CLICKED] * 4
        for outcome in outcomes:
            stats = ledger.record(strategies[1], outcome)
            assert 0 <= stats.bypass_rate <= 100
            assert 0 <= stats.click_rate <= 100
        assert ledger.strategy_stats(strategies[1]).attempts == len(outcomes)

    def test_running_mean_then_decay(self, ledger):
        ledger.record("1", BYPASSED)
        assert ledger.persona_stats("1").bypass_rate == pytest.approx(100.0)
        ledger.record("1", BLOCKED)
        assert ledger.persona_stats("1").bypass_rate == pytest.approx(50.0)
        ledger.record("1", BYPASSED)
        assert ledger.persona_stats("1").bypass_rate == pytest.approx(200 / 3)

        before = ledger.persona_stats("1").bypass_rate
        ledger.record("1", BLOCKED)
        assert ledger.persona_stats("1").bypass_rate == pytest.approx(before * 0.95)

    def test_decay_blends_new_observation(self, ledger, strategies):
        for _ in range(3):
            ledger.record(strategies[0], BLOCKED)
        old = ledger.strategy_stats(strategies[0])
        old_bypass, old_click = old.bypass_rate, old.click_rate

        stats = ledger.record(strategies[0], CLICKED)

        assert stats.bypass_rate == pytest.approx(old_bypass * 0.95 + 100 * 0.05)
        assert stats.click_rate == pytest.approx(old_click * 0.95 + 100 * 0.05)

    def test_custom_decay(self, strategies, personas):
        ledger = StrategyLedger(strategies, personas, params=LearningParams(min_attempts=1, decay=0.5))
        ledger.record("4", BYPASSED)
        ledger.record("4", BLOCKED)
        assert ledger.persona_stats("4").bypass_rate == pytest.approx(50.0)

    def test_score_uses_ledger_weights(self, ledger, strategies):
        ledger.record(strategies[0], CLICKED)
        ledger.record(strategies[0], BYPASSED)
        stats = ledger.strategy_stats(strategies[0])
        assert stats.score == pytest.approx(0.6 * stats.bypass_rate + 0.4 * stats.click_rate)
        assert stats.successes == 2

    def test_combo_entries_have_no_score(self, ledger, strategies):
        stats = ledger.record((strategies[0], "2"), BYPASSED)
        assert stats.attempts == 1
        assert stats.successes == 1
        assert "score" not in stats.model_dump()

    def test_unknown_persona_is_created(self, ledger):
        stats = ledger.record("99", BLOCKED)
        assert stats.attempts == 1
        assert ledger.persona_stats("99") is stats

    def test_numeric_persona_id_uses_string_key(self, ledger):
        ledger.record(3, BYPASSED)
        assert ledger.persona_stats("3").attempts == 1

    def test_strategy_key_string_updates_strategy(self, ledger, strategies):
        personas_before = set(ledger.state.persona_stats)

        stats = ledger.record(strategies[0].key, BYPASSED)

        assert ledger.strategy_stats(strategies[0]) is stats
        assert stats.attempts == 1
        assert stats.successes == 1
        assert set(ledger.state.persona_stats) == personas_before

    def test_record_email_updates_three_keys(self, ledger, strategies):
        ledger.record_email(strategies[2], "5", CLICKED)
        assert ledger.strategy_stats(strategies[2]).attempts == 1
        assert ledger.persona_stats("5").attempts == 1
        assert ledger.combo_stats(strategies[2], "5").attempts == 1


class TestPersistence:

    def test_round_trip_keeps_stats(self, ledger, ledger_store, strategies, personas):
        ledger.record_email(strategies[0], "1", CLICKED)
        ledger.record_email(strategies[1], "2", BLOCKED)
        assert ledger.persist() is True

        reloaded = StrategyLedger(strategies, personas, ledger_store)

        assert reloaded.state.strategy_stats == ledger.state.strategy_stats
        assert reloaded.state.persona_stats == ledger.state.persona_stats
        assert reloaded.state.combo_stats == ledger.state.combo_stats

    def test_persist_records_learning_params(self, ledger, ledger_store):
        ledger.persist()
        assert ledger_store.state.learning_params["minAttemptsForLearning"] == 3
        assert ledger_store.state.last_updated is not None

    def test_write_failure_is_not_fatal(self, strategies, personas):
        store = MagicMock()
        store.load.return_value = None
        store.save.side_effect = OSError("read-only file system")

        ledger = StrategyLedger(strategies, personas, store)
        ledger.record("1", BYPASSED)

        assert ledger.persist() is False
        assert ledger.persona_stats("1").attempts == 1


def test_summary(ledger, strategies):
    for _ in range(3):
        ledger.record(strategies[0], CLICKED)

    summary = ledger.summary(top_n=2)

    assert len(summary.top_strategies) == 2
    assert summary.top_strategies[0].strategy == strategies[0].key
    assert summary.top_vulnerable_personas[0].persona_name in {"Michael Chen", "Sarah Williams"}
    assert summary.total_strategies == 3
    assert summary.total_personas == 5
    assert summary.total_combinations == 0
    assert summary.to_wire()["topStrategies"][0]["strategy"] == strategies[0].key
