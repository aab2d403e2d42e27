"""
Tests for inbox/defense aggregates and the agent stats files.
"""
import json
from datetime import timedelta

from phishdrill.schemas import Classification, DefenseStats, OffenseStats
from phishdrill.services.metrics import (
    PERFORMANCE_HISTORY_LIMIT,
    StatsFile,
    compute_defense_metrics,
    compute_inbox_metrics,
    track_cycle,
)


def _verdict(confidence):
    return Classification(risk_level="low", risk_score=30, confidence=confidence, reasoning="x")


def test_inbox_metrics_round_to_one_decimal(make_email):
    records = [make_email(status="blocked")] + [make_email() for _ in range(2)]

    metrics = compute_inbox_metrics(records)

    assert metrics.detection_rate == 33.3
    assert metrics.bypass_rate == 66.7
    assert metrics.click_rate == 0.0


def test_clicks_on_detected_mail_do_not_count(make_email):
    metrics = compute_inbox_metrics([make_email(status="blocked", clicked=True)])
    assert metrics.emails_clicked == 0


def test_empty_inbox_metrics():
    assert compute_inbox_metrics([]).to_wire() == {
        "totalEmails": 0, "detected": 0, "bypassed": 0, "emailsClicked": 0,
        "detectionRate": 0.0, "bypassRate": 0.0, "clickRate": 0.0,
    }


def test_defense_metrics(make_email):
    blocked = make_email(status="blocked", detection_time=4.0, classification=_verdict(0.9))
    reported = make_email(status="reported", detection_time=2.0, classification=_verdict(0.7))
    leaked = make_email(risk_score=30, classification=_verdict(0.8))
    unscored = make_email()

    metrics = compute_defense_metrics([blocked, reported, leaked, unscored])

    assert metrics.detection_rate == 50.0
    assert metrics.bypass_rate == 50.0
    assert metrics.avg_response_time == 3.0
    assert metrics.avg_leakage_risk == 30.0
    assert metrics.mean_confidence == 80.0


def test_track_cycle_tallies_and_caps_history():
    stats = DefenseStats()
    stats.performance_history = [{"cycleNumber": i} for i in range(PERFORMANCE_HISTORY_LIMIT)]

    track_cycle(stats, {"analyzed": 2, "blocked": 1}, cycleDuration=12)
    track_cycle(stats, {"analyzed": 1, "blocked": 0})

    assert stats.total_cycles == 2
    assert len(stats.performance_history) == PERFORMANCE_HISTORY_LIMIT
    assert stats.performance_history[-2]["cycleDuration"] == 12
    day = stats.cycles_by_day[stats.last_cycle_time.date().isoformat()]
    assert day == {"cycles": 2, "analyzed": 3, "blocked": 1}


def test_stats_file_merges_saved_values(tmp_path):
    path = str(tmp_path / "agent-metrics.json")
    with open(path, "w") as f:
        json.dump({"totalCycles": 7, "failedGenerations": 2}, f)

    stats = StatsFile(path, OffenseStats).load()

    assert stats.total_cycles == 7
    assert stats.failed_generations == 2
    assert stats.successful_generations == 0


def test_stats_file_ignores_non_object(tmp_path):
    path = str(tmp_path / "defense-metrics.json")
    with open(path, "w") as f:
        json.dump([1, 2, 3], f)

    assert StatsFile(path, DefenseStats).load().total_cycles == 0


def test_stats_file_round_trip(tmp_path):
    stats_file = StatsFile(str(tmp_path / "nested" / "defense-metrics.json"), DefenseStats)
    stats = DefenseStats(total_cycles=3, processed_email_ids=["a", "b"])
    stats.last_cycle_time = stats.start_time + timedelta(minutes=1)

    assert stats_file.save(stats) is True

    loaded = stats_file.load()
    assert loaded.processed_email_ids == ["a", "b"]
    assert loaded.last_cycle_time == stats.last_cycle_time
