import logging
import random
import time
from typing import Callable, List, Optional

from phishdrill.catalog import ATTACK_STRATEGIES, TARGET_PERSONAS
from phishdrill.core.learner import LearningReport, OutcomeLearner
from phishdrill.core.ledger import StrategyLedger
from phishdrill.core.selector import StrategySelector
from phishdrill.schemas import EmailRecord, InboxMetrics, OffenseStats
from phishdrill.services.email_generator import DrillTemplateGenerator, EmailGenerator
from phishdrill.services.inbox_store import JsonInboxStore
from phishdrill.services.industry_client import IndustryClient
from phishdrill.services.ledger_store import create_ledger_store
from phishdrill.services.metrics import StatsFile, compute_inbox_metrics, track_cycle

logger = logging.getLogger(__name__)

SUMMARY_EVERY_N_CYCLES = 10


class InboxDeployer:
    """Deploys straight into the shared inbox file"""

    def __init__(self, inbox: JsonInboxStore):
        self.inbox = inbox

    def deploy_emails(self, emails: List[EmailRecord]):
        size = self.inbox.append(emails)
        logger.info(f"✓ Deployed {len(emails)} emails ({size} in inbox)")

    def get_metrics(self) -> Optional[InboxMetrics]:
        return compute_inbox_metrics(self.inbox.load())


class OffenseAgent:
    """
    Select targets and strategies, generate and deploy drill emails, then
    learn from what the defense and the simulated users did with them.
    """

    def __init__(self,
                 selector: StrategySelector,
                 learner: OutcomeLearner,
                 generator: EmailGenerator,
                 deployer,
                 stats_file: StatsFile = None,
                 max_targets: int = 3,
                 learning_delay: float = 35,
                 cycle_minutes: float = 5,
                 sleep: Callable[[float], None] = time.sleep):
        self.selector = selector
        self.learner = learner
        self.generator = generator
        self.deployer = deployer
        self.stats_file = stats_file
        self.max_targets = max_targets
        self.learning_delay = learning_delay
        self.cycle_minutes = cycle_minutes
        self.sleep = sleep
        self.running = False

        self.stats: OffenseStats = stats_file.load() if stats_file else OffenseStats()

    @property
    def ledger(self) -> StrategyLedger:
        return self.selector.ledger

    def run_cycle(self) -> Optional[LearningReport]:
        started = time.monotonic()
        logger.info(f"Starting attack cycle #{self.stats.total_cycles + 1}")

        generated: List[EmailRecord] = []
        failed = 0
        for persona, strategy in self.selector.plan_cycle(self.max_targets):
            try:
                generated.append(self.generator.generate(persona, strategy))
            except Exception as e:
                failed += 1
                logger.error(f"Failed to generate email for {persona.name}: {e}")

        self.stats.total_emails_generated += len(generated)
        self.stats.successful_generations += len(generated)
        self.stats.failed_generations += failed

        deployed: List[EmailRecord] = []
        if generated:
            try:
                self.deployer.deploy_emails(generated)
                deployed = generated
            except Exception as e:
                logger.error(f"Failed to deploy emails: {e}")

        report = None
        if deployed:
            # Give the defense agent time to see the new emails
            logger.info(f"Waiting {self.learning_delay}s before learning from outcomes")
            self.sleep(self.learning_delay)
            report = self.learner.learn(deployed)

        self._refresh_outcome_stats()
        track_cycle(
            self.stats,
            {'generated': len(generated), 'failed': failed, 'deployed': len(deployed)},
            cycleDuration=int((time.monotonic() - started) * 1000),
        )
        if self.stats.total_cycles % SUMMARY_EVERY_N_CYCLES == 0:
            self.log_summary()
        self.flush()
        return report

    def _refresh_outcome_stats(self):
        try:
            metrics = self.deployer.get_metrics()
            if metrics is None:
                return
            if not isinstance(metrics, InboxMetrics):
                metrics = InboxMetrics.model_validate(metrics)
        except Exception as e:
            logger.warning(f"Could not read attack metrics: {e}")
            return

        self.stats.emails_bypassed = metrics.bypassed
        self.stats.emails_detected = metrics.detected
        self.stats.emails_clicked = metrics.emails_clicked
        self.stats.bypass_rate = metrics.bypass_rate
        self.stats.click_rate = metrics.click_rate

    def log_summary(self):
        summary = self.ledger.summary()
        logger.info(
            f"📚 Ledger: {summary.total_strategies} strategies, {summary.total_personas} personas, "
            f"{summary.total_combinations} combinations tracked"
        )
        if summary.top_strategies:
            best = summary.top_strategies[0]
            logger.info(
                f"   Best strategy: {best.strategy} (score: {best.score:.2f}, "
                f"bypass: {best.bypass_rate:.2f}%, attempts: {best.attempts})"
            )
        if summary.top_vulnerable_personas:
            top = summary.top_vulnerable_personas[0]
            logger.info(
                f"   Most vulnerable: {top.persona_name} (vuln: {top.vulnerability_score:.2f}, "
                f"bypass: {top.bypass_rate:.2f}%, attempts: {top.attempts})"
            )

    def flush(self):
        if self.stats_file is not None:
            self.stats_file.save(self.stats)

    def start(self):
        """Run cycles until interrupted, then persist the ledger once more"""
        logger.info("🎯 Offense agent started")
        logger.info(f"Cycle interval: {self.cycle_minutes} minutes, targets per cycle: {self.max_targets}")
        self.running = True

        while self.running:
            try:
                self.run_cycle()
                self.sleep(self.cycle_minutes * 60)

            except KeyboardInterrupt:
                logger.info("Offense agent stopped by user")
                self.running = False

            except Exception as e:
                logger.error(f"Cycle error: {e}")
                self.sleep(self.cycle_minutes * 60)

        self.ledger.persist()
        self.flush()

    def stop(self):
        self.running = False


def build_offense_agent(settings) -> OffenseAgent:
    rng = random.Random(settings.RANDOM_SEED)
    params = settings.learning_params()
    inbox = JsonInboxStore(settings.INBOX_FILE)

    ledger = StrategyLedger(ATTACK_STRATEGIES, TARGET_PERSONAS, create_ledger_store(), params)
    deployer = IndustryClient(settings.INDUSTRY_URL) if settings.INDUSTRY_URL else InboxDeployer(inbox)

    return OffenseAgent(
        selector=StrategySelector(ledger, rng, params),
        learner=OutcomeLearner(ledger, inbox),
        generator=DrillTemplateGenerator(rng),
        deployer=deployer,
        stats_file=StatsFile(settings.OFFENSE_METRICS_FILE, OffenseStats),
        max_targets=settings.MAX_TARGETS_PER_CYCLE,
        learning_delay=settings.LEARNING_DELAY_SECONDS,
        cycle_minutes=settings.OFFENSE_CYCLE_MINUTES,
    )


# ===== CLI Entry Point =====

if __name__ == "__main__":
    import argparse

    from phishdrill.config import configure_logging, settings

    parser = argparse.ArgumentParser(description='PhishDrill Offense Agent')
    parser.add_argument('--interval', type=float, default=settings.OFFENSE_CYCLE_MINUTES,
                        help='Minutes between cycles')
    parser.add_argument('--targets', type=int, default=settings.MAX_TARGETS_PER_CYCLE,
                        help='Personas targeted per cycle')
    parser.add_argument('--once', action='store_true', help='Run a single cycle and exit')

    args = parser.parse_args()
    configure_logging()

    agent = build_offense_agent(settings)
    agent.cycle_minutes = args.interval
    agent.max_targets = args.targets

    if args.once:
        agent.run_cycle()
    else:
        agent.start()
