import logging
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "PhishDrill"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Shared flat-file storage
    DATA_DIR: str = "./data"
    INBOX_FILE: str = "./data/bank-inbox.json"
    LEDGER_FILE: str = "./data/learned-strategies.json"
    DEFENSE_METRICS_FILE: str = "./data/defense-metrics.json"
    OFFENSE_METRICS_FILE: str = "./data/agent-metrics.json"

    # Ledger backend: "json" (flat file) or "sql" (SQLAlchemy snapshot table)
    LEDGER_BACKEND: str = "json"
    DATABASE_URL: str = "sqlite:///./data/phishdrill.db"

    # Agent cycles
    OFFENSE_CYCLE_MINUTES: float = 5
    DEFENSE_CYCLE_SECONDS: float = 30
    MAX_TARGETS_PER_CYCLE: int = 3
    LEARNING_DELAY_SECONDS: float = 35
    INDUSTRY_URL: Optional[str] = None

    # Online learning
    EXPLORATION_RATE: float = 0.2
    MIN_ATTEMPTS: int = 3
    LEARNING_DECAY: float = 0.95
    SUCCESS_THRESHOLD: float = 30
    LEDGER_BYPASS_WEIGHT: float = 0.6
    LEDGER_CLICK_WEIGHT: float = 0.4
    SELECTION_BYPASS_WEIGHT: float = 0.7
    SELECTION_CLICK_WEIGHT: float = 0.3
    RANDOM_SEED: Optional[int] = None

    # Defense
    CLASSIFIER_MODE: str = "decision_list"
    SIMULATE_USERS: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    def learning_params(self):
        """Build the learning parameters handed to the ledger and selector"""
        from phishdrill.core.ledger import LearningParams

        return LearningParams(
            success_threshold=self.SUCCESS_THRESHOLD,
            exploration_rate=self.EXPLORATION_RATE,
            min_attempts=self.MIN_ATTEMPTS,
            decay=self.LEARNING_DECAY,
            ledger_weights=(self.LEDGER_BYPASS_WEIGHT, self.LEDGER_CLICK_WEIGHT),
            selection_weights=(self.SELECTION_BYPASS_WEIGHT, self.SELECTION_CLICK_WEIGHT),
        )


settings = Settings()


LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"


def configure_logging(level: str = None, log_file: str = None):
    """Root logging setup for the agent and API entry points"""
    handlers = [logging.StreamHandler()]
    log_file = log_file or settings.LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
