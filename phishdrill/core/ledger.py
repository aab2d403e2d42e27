import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from phishdrill.schemas import (
    ComboStats,
    LedgerState,
    LedgerSummary,
    OutcomeStats,
    Persona,
    PersonaRanking,
    PersonaStats,
    Strategy,
    StrategyRanking,
    StrategyStats,
    utcnow,
)

logger = logging.getLogger(__name__)

# Seeded bypass rate / score for keys the ledger has never seen
DEFAULT_STRATEGY_SCORES = {'basic': 20, 'advanced': 30, 'expert': 40}
DEFAULT_PERSONA_SCORES = {'Low': 20, 'Medium': 30, 'High': 40, 'Critical': 50}


@dataclass
class LearningParams:
    success_threshold: float = 30
    exploration_rate: float = 0.2
    min_attempts: int = 3
    decay: float = 0.95
    # (bypass, click) weight pairs
    ledger_weights: Tuple[float, float] = (0.6, 0.4)
    selection_weights: Tuple[float, float] = (0.7, 0.3)

    def to_dict(self) -> Dict:
        return {
            'successThreshold': self.success_threshold,
            'explorationRate': self.exploration_rate,
            'minAttemptsForLearning': self.min_attempts,
            'learningDecay': self.decay,
            'ledgerWeights': list(self.ledger_weights),
            'selectionWeights': list(self.selection_weights),
        }


def weighted_score(bypass_rate: float, click_rate: float, weights: Tuple[float, float]) -> float:
    return bypass_rate * weights[0] + click_rate * weights[1]


@dataclass(frozen=True)
class Outcome:
    bypassed: bool = False
    clicked: bool = False


class LedgerStore(Protocol):
    """Persistence seam for the ledger blob"""

    def load(self) -> Optional[LedgerState]:
        ...

    def save(self, state: LedgerState) -> None:
        ...


class InMemoryLedgerStore:
    """Keeps deep copies so callers cannot mutate the 'persisted' state"""

    def __init__(self, state: Optional[LedgerState] = None):
        self.state = state
        self.saves = 0

    def load(self) -> Optional[LedgerState]:
        return self.state.model_copy(deep=True) if self.state is not None else None

    def save(self, state: LedgerState) -> None:
        self.state = state.model_copy(deep=True)
        self.saves += 1


def strategy_key(strategy: Union[Strategy, str]) -> str:
    return strategy.key if isinstance(strategy, Strategy) else str(strategy)


def combo_key(strategy: Union[Strategy, str], persona_id) -> str:
    return f"{strategy_key(strategy)}|{persona_id}"


LedgerKey = Union[Strategy, str, int, Tuple[Strategy, str]]


class StrategyLedger:
    """
    Online-learning statistics per strategy, per persona and per
    (strategy, persona) combination.

    Rates are percentages. The first min_attempts outcomes of a key are a
    plain running mean; after that each outcome is blended in with
    exponential decay.
    """

    def __init__(self,
                 strategies: Iterable[Strategy],
                 personas: Iterable[Persona],
                 store: LedgerStore = None,
                 params: LearningParams = None):
        self.strategies: List[Strategy] = list(strategies)
        self.personas: List[Persona] = list(personas)
        self.store = store if store is not None else InMemoryLedgerStore()
        self.params = params or LearningParams()

        self.state = self._load()
        self._seed_defaults()

    # ==========================================
    # LOAD / PERSIST
    # ==========================================

    def _load(self) -> LedgerState:
        try:
            state = self.store.load()
        except Exception as e:
            logger.warning(f"Failed to load learned patterns, starting from defaults: {e}")
            return LedgerState()

        if state is None:
            return LedgerState()

        logger.info(
            f"Loaded learned patterns: {len(state.strategy_stats)} strategies, "
            f"{len(state.persona_stats)} personas, {len(state.combo_stats)} combinations"
        )
        return state

    def _seed_defaults(self):
        """Merge defaults for enumerated strategies/personas the stored state lacks"""
        for strategy in self.strategies:
            key = strategy.key
            if key not in self.state.strategy_stats:
                default = DEFAULT_STRATEGY_SCORES.get(strategy.attack_level, 20)
                self.state.strategy_stats[key] = StrategyStats(bypass_rate=default, score=default)

        for persona in self.personas:
            if persona.id not in self.state.persona_stats:
                default = DEFAULT_PERSONA_SCORES.get(persona.access_level, 30)
                self.state.persona_stats[persona.id] = PersonaStats(
                    bypass_rate=default, vulnerability_score=default
                )

    def persist(self) -> bool:
        """Write the whole ledger through the store. Never raises."""
        self.state.last_updated = utcnow()
        self.state.learning_params = self.params.to_dict()
        try:
            self.store.save(self.state)
            return True
        except Exception as e:
            logger.error(f"Failed to save learned patterns, keeping in-memory state: {e}")
            return False

    # ==========================================
    # MUTATION
    # ==========================================

    def _blend(self, stats: OutcomeStats, outcome: Outcome):
        p = self.params
        stats.attempts += 1
        observed_bypass = 100.0 if outcome.bypassed else 0.0
        observed_click = 100.0 if outcome.clicked else 0.0

        if stats.attempts > p.min_attempts:
            stats.bypass_rate = stats.bypass_rate * p.decay + observed_bypass * (1 - p.decay)
            stats.click_rate = stats.click_rate * p.decay + observed_click * (1 - p.decay)
        else:
            n = stats.attempts
            stats.bypass_rate = (stats.bypass_rate * (n - 1) + observed_bypass) / n
            stats.click_rate = (stats.click_rate * (n - 1) + observed_click) / n

        stats.bypass_rate = max(0.0, min(100.0, stats.bypass_rate))
        stats.click_rate = max(0.0, min(100.0, stats.click_rate))
        if outcome.bypassed:
            stats.successes += 1
        stats.last_updated = utcnow()

    def record(self, key: LedgerKey, outcome: Outcome) -> OutcomeStats:
        """
        Fold one observed outcome into the stats for a key.

        Args:
            key: a Strategy or known strategy key, a persona id, or a
                (Strategy, persona_id) pair
            outcome: bypassed/clicked flags of one deployed email

        Returns:
            The updated stats entry (created with zeroed stats if unknown)
        """
        weights = self.params.ledger_weights

        if isinstance(key, tuple):
            strategy, persona_id = key
            k = combo_key(strategy, persona_id)
            stats = self.state.combo_stats.setdefault(k, ComboStats())
            self._blend(stats, outcome)
            return stats

        if isinstance(key, Strategy) or (isinstance(key, str) and key in self.state.strategy_stats):
            stats = self.state.strategy_stats.setdefault(strategy_key(key), StrategyStats())
            self._blend(stats, outcome)
            stats.score = weighted_score(stats.bypass_rate, stats.click_rate, weights)
            return stats

        stats = self.state.persona_stats.setdefault(str(key), PersonaStats())
        self._blend(stats, outcome)
        stats.vulnerability_score = weighted_score(stats.bypass_rate, stats.click_rate, weights)
        return stats

    def record_email(self, strategy: Optional[Strategy], persona_id: Optional[str], outcome: Outcome):
        """Strategy, persona and combination updates for one deployed email"""
        if strategy is not None:
            self.record(strategy, outcome)
        if persona_id is not None:
            self.record(str(persona_id), outcome)
        if strategy is not None and persona_id is not None:
            self.record((strategy, str(persona_id)), outcome)

    # ==========================================
    # READ ACCESS
    # ==========================================

    def strategy_stats(self, strategy: Union[Strategy, str]) -> Optional[StrategyStats]:
        return self.state.strategy_stats.get(strategy_key(strategy))

    def persona_stats(self, persona_id) -> Optional[PersonaStats]:
        return self.state.persona_stats.get(str(persona_id))

    def combo_stats(self, strategy: Union[Strategy, str], persona_id) -> Optional[ComboStats]:
        return self.state.combo_stats.get(combo_key(strategy, persona_id))

    def combos_for_persona(self, persona_id) -> List[Tuple[Strategy, ComboStats]]:
        """Combination stats for one persona, in strategy enumeration order"""
        found = []
        for strategy in self.strategies:
            stats = self.combo_stats(strategy, persona_id)
            if stats is not None:
                found.append((strategy, stats))
        return found

    def summary(self, top_n: int = 5) -> LedgerSummary:
        names = {p.id: p.name for p in self.personas}

        strategies = sorted(
            (StrategyRanking(strategy=key, **stats.model_dump())
             for key, stats in self.state.strategy_stats.items()),
            key=lambda s: s.score, reverse=True,
        )
        personas = sorted(
            (PersonaRanking(persona_id=pid, persona_name=names.get(pid, 'Unknown'), **stats.model_dump())
             for pid, stats in self.state.persona_stats.items()),
            key=lambda p: p.vulnerability_score, reverse=True,
        )

        return LedgerSummary(
            top_strategies=strategies[:top_n],
            top_vulnerable_personas=personas[:top_n],
            total_strategies=len(strategies),
            total_personas=len(personas),
            total_combinations=len(self.state.combo_stats),
        )
