import logging
import random
from typing import List, Optional, Tuple

from phishdrill.core.ledger import LearningParams, StrategyLedger, weighted_score
from phishdrill.schemas import Persona, Strategy

logger = logging.getLogger(__name__)


class StrategySelector:
    """Exploration/exploitation policy over the ledger"""

    def __init__(self, ledger: StrategyLedger, rng: random.Random = None, params: LearningParams = None):
        self.ledger = ledger
        self.rng = rng or random.Random()
        self.params = params or ledger.params

    def adjusted_vulnerability(self, persona: Persona) -> float:
        """
        Ranking value for target selection.

        Below min_attempts the confidence discount is folded into the
        exploration bonus, so an untested persona never ranks below a
        tested one with the same vulnerability score.
        """
        stats = self.ledger.persona_stats(persona.id)
        score = stats.vulnerability_score if stats else 0.0
        attempts = stats.attempts if stats else 0
        min_attempts = self.params.min_attempts

        if attempts < min_attempts:
            return score + 20 * (min_attempts - attempts)
        if attempts < 2 * min_attempts:
            return score + 10 * (2 * min_attempts - attempts)
        return score

    def select_targets(self, n: int) -> List[Persona]:
        personas = self.ledger.personas
        # sorted() is stable: ties keep enumeration order
        ranked = sorted(personas, key=self.adjusted_vulnerability, reverse=True)
        return ranked[:max(0, min(n, len(ranked)))]

    def select_strategy(self) -> Optional[Strategy]:
        """Epsilon-greedy pick; None only when no strategies are enumerated"""
        strategies = self.ledger.strategies
        if not strategies:
            logger.error("No strategies enumerated, nothing to select")
            return None

        if self.rng.random() < self.params.exploration_rate:
            choice = self.rng.choice(strategies)
            logger.info(f"Exploration: selected random strategy {choice.key}")
            return choice

        best: Optional[Strategy] = None
        best_score = -1.0
        for strategy in strategies:
            stats = self.ledger.strategy_stats(strategy)
            if stats is None:
                continue
            confidence = min(stats.attempts / self.params.min_attempts, 1.0) if self.params.min_attempts else 1.0
            adjusted = stats.score * confidence
            if adjusted > best_score:
                best_score = adjusted
                best = strategy

        if best is None:
            return strategies[0]

        stats = self.ledger.strategy_stats(best)
        logger.info(
            f"Exploitation: selected best strategy {best.key} "
            f"(score: {stats.score:.2f}, attempts: {stats.attempts})"
        )
        return best

    def select_strategy_for(self, persona_id) -> Optional[Strategy]:
        """Best proven combination for the persona, else select_strategy()"""
        best: Optional[Strategy] = None
        best_score = -1.0
        for strategy, stats in self.ledger.combos_for_persona(persona_id):
            if stats.attempts < self.params.min_attempts:
                continue
            score = weighted_score(stats.bypass_rate, stats.click_rate, self.params.selection_weights)
            if score > best_score:
                best_score = score
                best = strategy

        return best if best is not None else self.select_strategy()

    def plan_cycle(self, n: int) -> List[Tuple[Persona, Strategy]]:
        """Targets plus one strategy each, substituting unused strategies for repeats"""
        plan = []
        used = set()
        for persona in self.select_targets(n):
            strategy = self.select_strategy_for(persona.id)
            if strategy is None:
                continue
            if strategy.key in used:
                unused = [s for s in self.ledger.strategies if s.key not in used]
                if unused:
                    strategy = self.rng.choice(unused)
                    logger.info(f"Diversity: switched to {strategy.key} for {persona.name}")
            used.add(strategy.key)
            plan.append((persona, strategy))

        logger.info(f"Targeting {len(plan)} personas with ledger-selected strategies")
        return plan
