import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from pydantic import ValidationError

from phishdrill.catalog import PERSONA_DOMAINS
from phishdrill.core.features import FeatureSet, RiskFeatureExtractor, UrlAnalyzer, sender_domain
from phishdrill.schemas import Classification, EmailRecord, Strategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionRule:
    """One (predicate, verdict) row of the decision list"""
    name: str
    predicate: Callable[[FeatureSet], bool]
    risk_level: str
    risk_score: int
    confidence: float
    reasoning: str

    def verdict(self) -> Classification:
        return Classification(
            risk_level=self.risk_level,
            risk_score=self.risk_score,
            confidence=self.confidence,
            reasoning=self.reasoning,
            rule=self.name,
        )


def _has_risk_keywords(f: FeatureSet) -> bool:
    return f.credential_keyword_count >= 1 or f.security_keyword_count >= 1


# Evaluated top to bottom, first match wins
DECISION_RULES: Tuple[DecisionRule, ...] = (
    DecisionRule(
        'unauthentic_urls',
        lambda f: f.has_urls and f.url_authenticity_score < 30,
        'high', 85, 0.9, 'Suspicious or unauthentic URLs detected in email',
    ),
    DecisionRule(
        'credential_urgency',
        lambda f: f.credential_keyword_count >= 2 and f.urgency_keyword_count >= 2,
        'high', 80, 0.85, 'Credential requests combined with urgency indicators',
    ),
    DecisionRule(
        'domain_mismatch',
        lambda f: f.domain_mismatch,
        'high', 75, 0.8, 'URL domain does not match sender domain',
    ),
    DecisionRule(
        'multiple_indicators',
        lambda f: f.total_suspicion_score >= 20,
        'high', 70, 0.75, 'Multiple suspicious indicators detected',
    ),
    DecisionRule(
        'suspicious_sender',
        lambda f: f.sender_authenticity_score < 40 and _has_risk_keywords(f),
        'medium', 55, 0.7, 'Suspicious sender with risk indicators',
    ),
    DecisionRule(
        'urgency_unprofessional',
        lambda f: f.total_urgency_score >= 15 and f.professionalism_score < 60,
        'medium', 50, 0.65, 'High urgency with low professionalism indicators',
    ),
    DecisionRule(
        'suspicious_url_pattern',
        lambda f: f.has_suspicious_urls and 30 <= f.url_authenticity_score < 60,
        'medium', 45, 0.6, 'Some suspicious URL patterns detected',
    ),
    DecisionRule(
        'poor_grammar_keywords',
        lambda f: f.grammar_score < 50 and (
            f.credential_keyword_count >= 1 or f.financial_keyword_count >= 1
        ),
        'medium', 40, 0.55, 'Poor grammar combined with risk keywords',
    ),
    DecisionRule(
        'professional',
        lambda f: (f.professionalism_score >= 70 and f.grammar_score >= 60
                   and f.sender_authenticity_score >= 60),
        'low', 25, 0.8, 'Professional email with good authenticity indicators',
    ),
    DecisionRule(
        'default',
        lambda f: True,
        'low', 30, 0.6, 'No major risk indicators detected',
    ),
)

FALLBACK_RULE = DecisionRule(
    'fallback', lambda f: True, 'low', 30, 0.5, 'Unable to classify - defaulting to low risk',
)

_STATUS_BY_LEVEL = {
    'high': 'blocked',
    'medium': 'reported',
    'low': 'delivered',
}


def verdict_status(risk_level: str) -> str:
    """high -> blocked, medium -> reported, anything else stays delivered"""
    return _STATUS_BY_LEVEL.get(risk_level, 'delivered')


class RiskClassifier:
    """Decision-list classifier over extracted features"""

    def __init__(self, extractor: RiskFeatureExtractor = None, rules: Tuple[DecisionRule, ...] = DECISION_RULES):
        self.extractor = extractor or RiskFeatureExtractor()
        self.rules = rules

    def match(self, features: FeatureSet) -> DecisionRule:
        for rule in self.rules:
            if rule.predicate(features):
                return rule
        return FALLBACK_RULE

    def classify(self, features: FeatureSet) -> Classification:
        return self.match(features).verdict()

    def classify_email(self, email) -> Tuple[FeatureSet, Classification]:
        """
        Extract features and classify one email.

        Args:
            email: EmailRecord or a raw inbox mapping

        Returns:
            (features, classification); on an unexpected error the features are
            empty defaults and the verdict is the low-risk fallback
        """
        try:
            features = self.extractor.extract(email)
            return features, self.classify(features)
        except Exception as e:
            logger.error(f"Classification error: {e}")
            return FeatureSet(), FALLBACK_RULE.verdict()


class QuickRiskScorer:
    """
    Compact additive scorer, kept separate from the decision list.

    score() is the defense-side inline table (high >= 75, medium >= 50);
    estimate() is the generation-time table stamped on new drill emails
    (high >= 70, medium >= 40).
    """

    def __init__(self, url_analyzer: UrlAnalyzer = None, known_domains=None):
        self.urls = url_analyzer or UrlAnalyzer()
        self.known_domains = set(known_domains) if known_domains is not None else set(PERSONA_DOMAINS)

        self.urgency_keywords = ['urgent', 'immediate', 'critical', 'asap', 'action required']
        self.credential_keywords = ['password', 'credentials', 'login', 'verify account']
        self.security_keywords = ['security breach', 'unauthorized access', 'suspicious activity']

        self.thresholds = {'high': 75, 'medium': 50}
        self.estimate_thresholds = {'high': 70, 'medium': 40}

        self.attack_points = {'basic': 10, 'advanced': 20, 'expert': 30}
        self.urgency_points = {'medium': 10, 'high': 15, 'critical': 25}

    @staticmethod
    def _bucket(score: int, thresholds: dict) -> str:
        if score >= thresholds['high']:
            return 'high'
        if score >= thresholds['medium']:
            return 'medium'
        return 'low'

    def _url_points(self, authenticity: int) -> int:
        if authenticity < 30:
            return 45
        if authenticity < 60:
            return 30
        if authenticity < 80:
            return 15
        if authenticity < 100:
            return 5
        return 0

    @staticmethod
    def _keyword_points(urgency: int, credential: int, security: int) -> Tuple[int, Optional[str]]:
        if urgency >= 2 and credential >= 2:
            return 35, 'Credential requests combined with urgency indicators'
        if credential >= 2 and urgency >= 1:
            return 30, 'Credential requests with urgency'
        if credential >= 1 and urgency >= 1:
            return 20, 'Credential request with urgency'
        if security >= 1 and urgency >= 1:
            return 18, 'Security alert with urgency'
        if security >= 1:
            return 12, 'Security alert language'
        if credential >= 1:
            return 8, 'Credential request'
        if urgency >= 2:
            return 10, 'Multiple urgency indicators'
        if urgency >= 1:
            return 5, 'Urgency indicator'
        return 0, None

    def score(self, email) -> Classification:
        """Score one email with the inline additive table"""
        if not isinstance(email, EmailRecord):
            try:
                email = EmailRecord.model_validate(dict(email or {}))
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning(f"Malformed email input, using fallback verdict: {e}")
                return FALLBACK_RULE.verdict()

        subject = email.subject.lower()
        content = email.content.lower()
        sender = email.sender_address.lower()
        urls = [u for u in email.urls if u] or self.urls.extract_urls(email.content)

        score = 25
        reasons = []
        if urls:
            authenticity = self.urls.authenticity_score(urls, sender)
            points = self._url_points(authenticity)
            score += points
            if authenticity < 60:
                reasons.append('Suspicious or unauthentic URLs')
            elif points:
                reasons.append('Minor URL authenticity concerns')

        # Presence counts: each keyword counts once
        urgency = sum(1 for kw in self.urgency_keywords if kw in subject or kw in content)
        credential = sum(1 for kw in self.credential_keywords if kw in subject or kw in content)
        security = sum(1 for kw in self.security_keywords if kw in content)
        points, keyword_reason = self._keyword_points(urgency, credential, security)
        score += points
        if keyword_reason:
            reasons.append(keyword_reason)

        if 'noreply' in sender or 'no-reply' in sender:
            score += 3
            reasons.append('No-reply sender')
        domain = sender_domain(sender)
        if domain and domain not in self.known_domains:
            score += 10
            reasons.append(f'External sender domain {domain}')

        score = max(0, min(100, score))
        level = self._bucket(score, self.thresholds)
        confidence = 0.9 if score > 70 else 0.7 if score > 40 else 0.6
        reasoning = '; '.join(reasons) if reasons else 'No major risk indicators detected'

        return Classification(
            risk_level=level,
            risk_score=score,
            confidence=confidence,
            reasoning=reasoning,
            rule='quick_score',
        )

    def estimate(self, subject: str, content: str, strategy: Optional[Strategy]) -> Tuple[int, str]:
        """Preliminary (riskScore, riskLevel) stamped on a freshly generated email"""
        score = 30
        if strategy is not None:
            score += self.attack_points.get(strategy.attack_level, 0)
            score += self.urgency_points.get(strategy.urgency_level, 0)

        subject = (subject or '').lower()
        content = (content or '').lower()
        if 'urgent' in subject or 'critical' in subject:
            score += 10
        if 'credentials' in content or 'password' in content:
            score += 15
        if 'immediately' in content or 'asap' in content:
            score += 10

        score = min(100, score)
        return score, self._bucket(score, self.estimate_thresholds)


def build_classifier(mode: str = 'decision_list'):
    """Returns a callable email -> Classification for the configured mode"""
    if mode == 'quick':
        return QuickRiskScorer().score

    classifier = RiskClassifier()

    def classify(email) -> Classification:
        return classifier.classify_email(email)[1]

    return classify
