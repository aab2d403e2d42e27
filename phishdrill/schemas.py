from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

AttackLevel = Literal["basic", "advanced", "expert"]
UrgencyLevel = Literal["low", "medium", "high", "critical"]
AccessLevel = Literal["Low", "Medium", "High", "Critical"]
EmailStatus = Literal["delivered", "blocked", "reported"]
RiskLevel = Literal["low", "medium", "high"]

EMAIL_STATUSES = ("delivered", "blocked", "reported")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ==========================================
# 🎯 TARGETS & STRATEGIES
# ==========================================

class Strategy(WireModel):
    """(model, sophistication, urgency) tuple used to generate one email"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        protected_namespaces=(),
    )

    model_id: str = Field(
        validation_alias=AliasChoices("model", "modelId", "model_id"),
        serialization_alias="model",
    )
    attack_level: AttackLevel
    urgency_level: UrgencyLevel

    @property
    def key(self) -> str:
        return f"{self.model_id}|{self.attack_level}|{self.urgency_level}"


class Persona(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    role: str = ""
    company: str = ""
    department: str = ""
    email: Optional[EmailStr] = None
    location: str = ""
    phone: str = ""
    access_level: AccessLevel = "Medium"
    background: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _string_id(cls, value):
        # Numeric ids from older inbox files are keyed as strings everywhere
        return str(value)


# ==========================================
# 📨 EMAIL RECORDS
# ==========================================

class Classification(WireModel):
    risk_level: RiskLevel
    risk_score: int = Field(ge=0, le=100)
    confidence: float
    reasoning: str
    rule: Optional[str] = None
    analyzed_at: datetime = Field(default_factory=utcnow)


class EmailRecord(WireModel):
    """
    One generated/deployed message as stored in the shared inbox.

    Unknown keys written by other processes (engagement events, dashboard
    fields) are kept so a whole-file rewrite does not drop them.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(default_factory=lambda: f"email-{uuid4().hex[:12]}")
    subject: str = ""
    content: str = ""
    sender_name: str = Field(
        default="",
        validation_alias=AliasChoices("senderName", "sender", "sender_name"),
        serialization_alias="senderName",
    )
    sender_address: str = Field(
        default="",
        validation_alias=AliasChoices("senderAddress", "senderEmail", "sender_address"),
        serialization_alias="senderAddress",
    )
    urls: List[str] = Field(default_factory=list)
    target_persona_id: Optional[str] = None
    strategy: Optional[Strategy] = None

    status: EmailStatus = "delivered"
    risk_score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    classification: Optional[Classification] = Field(
        default=None,
        validation_alias=AliasChoices("classification", "mlClassification"),
        serialization_alias="classification",
    )
    auto_detected: bool = False

    clicked: bool = False
    opened: bool = False
    user_reported: bool = False
    simulated: bool = False

    created_at: datetime = Field(
        default_factory=utcnow,
        validation_alias=AliasChoices("createdAt", "receivedAt", "created_at"),
        serialization_alias="createdAt",
    )
    detected_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    detection_time: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy_shape(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if data.get("id") is None:
            data.pop("id", None)
        else:
            data["id"] = str(data["id"])
        for text_field in ("subject", "content", "sender", "senderName", "senderEmail", "senderAddress"):
            if text_field in data and data[text_field] is None:
                data[text_field] = ""
        if data.get("urls") is None:
            data["urls"] = []
        elif isinstance(data["urls"], str):
            data["urls"] = [data["urls"]]
        elif isinstance(data["urls"], list):
            data["urls"] = [u for u in data["urls"] if u is not None]

        # Flat strategy fields from the original offense agent
        if data.get("strategy") is None and "model" in data:
            legacy = {
                "model": data.pop("model", None),
                "attackLevel": data.pop("attackLevel", None),
                "urgencyLevel": data.pop("urgencyLevel", None),
            }
            try:
                data["strategy"] = Strategy.model_validate(legacy)
            except ValidationError:
                data["strategy"] = None
        elif isinstance(data.get("strategy"), dict):
            try:
                data["strategy"] = Strategy.model_validate(data["strategy"])
            except ValidationError:
                data["strategy"] = None

        if data.get("targetPersonaId") is None and data.get("target_persona_id") is None:
            persona = data.get("targetPersona")
            if isinstance(persona, dict) and persona.get("id") is not None:
                data["targetPersonaId"] = persona["id"]
        for id_field in ("targetPersonaId", "target_persona_id"):
            if data.get(id_field) is not None:
                data[id_field] = str(data[id_field])

        if data.get("status") not in EMAIL_STATUSES:
            data["status"] = "delivered"
        for flag in ("clicked", "opened", "userReported", "user_reported", "simulated", "autoDetected", "auto_detected"):
            if flag in data and data[flag] is None:
                data[flag] = False
        return data

    @field_validator("risk_score", mode="before")
    @classmethod
    def _clamp_risk_score(cls, value):
        if value is None:
            return None
        try:
            return max(0, min(100, int(round(float(value)))))
        except (TypeError, ValueError):
            return None

    @property
    def bypassed(self) -> bool:
        return self.status not in ("blocked", "reported")

    @property
    def has_click(self) -> bool:
        """Real click: the flag, or a non-phantom click event left by the server"""
        if self.clicked:
            return True
        events = (self.model_extra or {}).get("events") or []
        return any(
            isinstance(e, dict) and e.get("event") == "clicked" and not e.get("phantom")
            for e in events
        )


# ==========================================
# 📚 LEARNING STATE
# ==========================================

class OutcomeStats(WireModel):
    attempts: int = 0
    successes: int = 0
    bypass_rate: float = 0.0
    click_rate: float = 0.0
    last_updated: datetime = Field(default_factory=utcnow)


class StrategyStats(OutcomeStats):
    score: float = 0.0


class PersonaStats(OutcomeStats):
    vulnerability_score: float = 0.0


class ComboStats(OutcomeStats):
    pass


class LedgerState(WireModel):
    """Persisted blob; the original trainer's key names are accepted on load"""
    strategy_stats: Dict[str, StrategyStats] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("strategyStats", "strategyScores", "strategy_stats"),
        serialization_alias="strategyStats",
    )
    persona_stats: Dict[str, PersonaStats] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("personaStats", "personaVulnerabilities", "persona_stats"),
        serialization_alias="personaStats",
    )
    combo_stats: Dict[str, ComboStats] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("comboStats", "combinations", "combo_stats"),
        serialization_alias="comboStats",
    )
    last_updated: Optional[datetime] = None
    learning_params: Dict[str, Any] = Field(default_factory=dict)


# ==========================================
# 📤 REPORTING MODELS
# ==========================================

class StrategyRanking(StrategyStats):
    strategy: str


class PersonaRanking(PersonaStats):
    persona_id: str
    persona_name: str = "Unknown"


class LedgerSummary(WireModel):
    top_strategies: List[StrategyRanking] = Field(default_factory=list)
    top_vulnerable_personas: List[PersonaRanking] = Field(default_factory=list)
    total_strategies: int = 0
    total_personas: int = 0
    total_combinations: int = 0


class InboxMetrics(WireModel):
    total_emails: int = 0
    detected: int = 0
    bypassed: int = 0
    emails_clicked: int = 0
    detection_rate: float = 0.0
    bypass_rate: float = 0.0
    click_rate: float = 0.0


class DefenseMetrics(WireModel):
    detection_rate: float = 0.0
    bypass_rate: float = 0.0
    avg_response_time: float = 0.0
    avg_leakage_risk: float = 0.0
    mean_confidence: float = 0.0


class DefenseStats(DefenseMetrics):
    start_time: datetime = Field(default_factory=utcnow)
    total_cycles: int = 0
    total_emails_analyzed: int = 0
    total_emails_blocked: int = 0
    total_emails_reported: int = 0
    total_emails_bypassed: int = 0
    high_risk_blocked: int = 0
    medium_risk_reported: int = 0
    low_risk_allowed: int = 0
    last_cycle_time: Optional[datetime] = None
    cycles_by_day: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    performance_history: List[Dict[str, Any]] = Field(default_factory=list)
    processed_email_ids: List[str] = Field(default_factory=list)


class OffenseStats(WireModel):
    start_time: datetime = Field(default_factory=utcnow)
    total_cycles: int = 0
    total_emails_generated: int = 0
    successful_generations: int = 0
    failed_generations: int = 0
    last_cycle_time: Optional[datetime] = None
    cycles_by_day: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    performance_history: List[Dict[str, Any]] = Field(default_factory=list)
    emails_bypassed: int = 0
    emails_detected: int = 0
    emails_clicked: int = 0
    bypass_rate: float = 0.0
    click_rate: float = 0.0


# ==========================================
# 📥 INPUT MODELS
# ==========================================

class DeployRequest(BaseModel):
    emails: List[EmailRecord]


class ClassificationResponse(WireModel):
    classification: Classification
    status: EmailStatus
    features: Dict[str, Any] = Field(default_factory=dict)
