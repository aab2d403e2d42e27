import logging
import random
import time
from typing import Callable, Dict, Optional

from phishdrill.core.risk_classifier import build_classifier, verdict_status
from phishdrill.schemas import Classification, DefenseStats, EmailRecord, utcnow
from phishdrill.services.behavior_simulator import UserBehaviorSimulator, as_utc
from phishdrill.services.inbox_store import InboxStoreError, JsonInboxStore
from phishdrill.services.metrics import StatsFile, compute_defense_metrics, track_cycle

logger = logging.getLogger(__name__)


class DefenseAgent:
    """
    Periodically classifies new inbox emails and blocks/reports risky ones
    """

    def __init__(self,
                 inbox: JsonInboxStore,
                 classify: Callable[[EmailRecord], Classification] = None,
                 stats_file: StatsFile = None,
                 simulator: Optional[UserBehaviorSimulator] = None,
                 check_interval: float = 30):
        """
        Initialize defense agent

        Args:
            inbox: Shared inbox store
            classify: email -> Classification (decision list by default)
            stats_file: Where agent stats are merged from and flushed to
            simulator: Optional user-behavior simulator run after each cycle
            check_interval: Seconds between cycles
        """
        self.inbox = inbox
        self.classify = classify or build_classifier()
        self.stats_file = stats_file
        self.simulator = simulator
        self.check_interval = check_interval
        self.running = False

        self.stats: DefenseStats = stats_file.load() if stats_file else DefenseStats()
        self.processed_ids = set(self.stats.processed_email_ids)

    def _is_new(self, record: EmailRecord) -> bool:
        return (record.status == 'delivered'
                and record.id not in self.processed_ids
                and record.classification is None)

    def _apply_verdict(self, record: EmailRecord, verdict: Classification) -> str:
        """Attach the verdict and move the record to its terminal status"""
        record.classification = verdict
        record.risk_level = verdict.risk_level
        record.risk_score = verdict.risk_score

        status = verdict_status(verdict.risk_level)
        if status != 'delivered':
            record.status = status
            record.auto_detected = True
            record.detected_at = utcnow()
            record.detection_time = (record.detected_at - as_utc(record.created_at)).total_seconds() / 60
        return status

    def run_cycle(self) -> Optional[Dict[str, int]]:
        """One classify/block/report pass over the inbox; None if the inbox is unreadable"""
        started = time.monotonic()
        logger.info(f"Starting defense cycle #{self.stats.total_cycles + 1}")

        try:
            records = self.inbox.load()
        except InboxStoreError as e:
            logger.error(f"Error reading inbox file: {e}")
            return None

        counts = {'analyzed': 0, 'blocked': 0, 'reported': 0, 'bypassed': 0}
        new_records = [r for r in records if self._is_new(r)]
        if new_records:
            logger.info(f"Analyzing {len(new_records)} new email(s) with the decision list")
        else:
            logger.info("No new emails to analyze")

        for record in new_records:
            try:
                verdict = self.classify(record)
                status = self._apply_verdict(record, verdict)
            except Exception as e:
                logger.error(f"Error analyzing email {record.id}: {e}")
                continue

            if status == 'blocked':
                counts['blocked'] += 1
                self.stats.high_risk_blocked += 1
                logger.info(f"✓ Blocked high-risk email: \"{record.subject}\" (Risk: {verdict.risk_score}/100)")
            elif status == 'reported':
                counts['reported'] += 1
                self.stats.medium_risk_reported += 1
                logger.info(f"✓ Reported medium-risk email: \"{record.subject}\" (Risk: {verdict.risk_score}/100)")
            else:
                counts['bypassed'] += 1
                self.stats.low_risk_allowed += 1
                logger.info(f"- Allowed low-risk email: \"{record.subject}\" (Risk: {verdict.risk_score}/100)")

            self.processed_ids.add(record.id)
            counts['analyzed'] += 1

        simulated = 0
        if self.simulator is not None:
            simulated = self.simulator.apply(r for r in records if r.classification is not None)

        if new_records or simulated:
            try:
                self.inbox.save(records)
            except InboxStoreError as e:
                logger.error(f"Error saving inbox file: {e}")

        duration_ms = int((time.monotonic() - started) * 1000)
        self.stats.total_emails_analyzed += counts['analyzed']
        self.stats.total_emails_blocked += counts['blocked']
        self.stats.total_emails_reported += counts['reported']
        self.stats.total_emails_bypassed += counts['bypassed']
        track_cycle(self.stats, counts, cycleDuration=duration_ms)

        for name, value in compute_defense_metrics(records).model_dump().items():
            setattr(self.stats, name, value)
        self.flush()

        logger.info(
            f"Cycle complete: {counts['analyzed']} analyzed, {counts['blocked']} blocked, "
            f"{counts['reported']} reported, {counts['bypassed']} bypassed ({duration_ms}ms)"
        )
        return counts

    def flush(self):
        if self.stats_file is None:
            return
        self.stats.processed_email_ids = sorted(self.processed_ids)
        self.stats_file.save(self.stats)

    def start(self):
        """Run cycles until interrupted"""
        logger.info("🛡️ Defense agent started")
        logger.info(f"Cycle interval: {self.check_interval} seconds, inbox: {self.inbox.path}")
        self.running = True

        while self.running:
            try:
                self.run_cycle()
                time.sleep(self.check_interval)

            except KeyboardInterrupt:
                logger.info("Defense agent stopped by user")
                self.running = False

            except Exception as e:
                logger.error(f"Cycle error: {e}")
                time.sleep(self.check_interval)

        self.flush()

    def stop(self):
        self.running = False


def build_defense_agent(settings, simulate: bool = None, mode: str = None) -> DefenseAgent:
    simulate = settings.SIMULATE_USERS if simulate is None else simulate
    simulator = UserBehaviorSimulator(random.Random(settings.RANDOM_SEED)) if simulate else None
    return DefenseAgent(
        inbox=JsonInboxStore(settings.INBOX_FILE),
        classify=build_classifier(mode or settings.CLASSIFIER_MODE),
        stats_file=StatsFile(settings.DEFENSE_METRICS_FILE, DefenseStats),
        simulator=simulator,
        check_interval=settings.DEFENSE_CYCLE_SECONDS,
    )


# ===== CLI Entry Point =====

if __name__ == "__main__":
    import argparse

    from phishdrill.config import configure_logging, settings

    parser = argparse.ArgumentParser(description='PhishDrill Defense Agent')
    parser.add_argument('--interval', type=float, default=settings.DEFENSE_CYCLE_SECONDS,
                        help='Seconds between cycles')
    parser.add_argument('--mode', choices=['decision_list', 'quick'], default=settings.CLASSIFIER_MODE)
    parser.add_argument('--no-simulate', action='store_true', help='Disable user-behavior simulation')
    parser.add_argument('--once', action='store_true', help='Run a single cycle and exit')

    args = parser.parse_args()
    configure_logging()

    agent = build_defense_agent(settings, simulate=not args.no_simulate and settings.SIMULATE_USERS, mode=args.mode)
    agent.check_interval = args.interval

    if args.once:
        agent.run_cycle()
    else:
        agent.start()
