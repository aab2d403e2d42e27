import ipaddress
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

import tldextract
from pydantic import ValidationError

from phishdrill.catalog import PERSONA_DOMAINS
from phishdrill.schemas import EmailRecord

logger = logging.getLogger(__name__)

# Bundled public-suffix snapshot only, never fetched over the network
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())


def registered_domain(host: str) -> str:
    """'mail.bank.co.uk' -> 'bank.co.uk' ('' when no public suffix matches)"""
    if not host:
        return ''
    ext = _tld_extract(host)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return ''


def sender_domain(sender_address: str) -> str:
    """Extract domain from an email address ('' when there is none)"""
    if not sender_address or '@' not in sender_address:
        return ''
    # Handle "Name <user@domain.com>"
    return sender_address.split('@')[-1].split('>')[0].strip().lower()


@dataclass
class FeatureSet:
    """Numeric/boolean signals derived from one email record"""
    # URL features
    has_urls: bool = False
    url_count: int = 0
    url_authenticity_score: int = 100
    has_suspicious_urls: bool = False
    has_shortener: bool = False
    has_raw_ip: bool = False
    has_insecure_scheme: bool = False
    domain_mismatch: bool = False

    # Keyword features
    urgency_keyword_count: int = 0
    credential_keyword_count: int = 0
    financial_keyword_count: int = 0
    security_keyword_count: int = 0
    threat_keyword_count: int = 0
    call_to_action_count: int = 0
    suspicious_phrase_count: int = 0

    # Social engineering tactics
    authority_impersonation: bool = False
    scarcity_tactics: bool = False
    consistency_tactics: bool = False

    # Sender features
    sender_authenticity_score: int = 50
    has_suspicious_sender_pattern: bool = False
    sender_domain_reputation: int = 50

    # Content quality
    grammar_score: int = 50
    spelling_score: int = 50
    professionalism_score: int = 50
    has_professional_greeting: bool = False
    has_professional_closing: bool = False

    # Structure
    subject_length: int = 0
    content_length: int = 0
    has_excessive_punctuation: bool = False
    subject_all_caps: bool = False

    # Composites
    total_urgency_score: int = 0
    total_suspicion_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UrlAnalyzer:
    """Scores URL authenticity against the sender's domain"""

    # Penalties subtracted from 100 for every URL that triggers them
    MISMATCH_PENALTY = 30
    SUSPICIOUS_PATTERN_PENALTY = 25
    SHORTENER_PENALTY = 20
    RAW_IP_PENALTY = 35
    INSECURE_SCHEME_PENALTY = 15

    def __init__(self):
        self.url_pattern = re.compile(r'https?://[^\s<>"{}|\\^`\[\]]+', re.IGNORECASE)
        self.suspicious_patterns = [
            re.compile(r'[a-z0-9]+-[a-z0-9]+\.(com|net|org)', re.IGNORECASE),
            re.compile(r'free|click|link|verify|secure', re.IGNORECASE),
        ]
        self.shortener_domains = {
            'bit.ly', 'tinyurl.com', 't.co', 'goo.gl', 'short.link', 'ow.ly', 'is.gd'
        }

    def extract_urls(self, text: str) -> List[str]:
        if not text:
            return []
        return self.url_pattern.findall(text)

    def extract_host(self, url: str) -> str:
        try:
            host = urlparse(url).hostname or ''
        except ValueError:
            return ''
        host = host.lower()
        if host.startswith('www.'):
            host = host[4:]
        return host

    def is_mismatch(self, url: str, sender_address: str) -> bool:
        expected = sender_domain(sender_address)
        host = self.extract_host(url)
        return bool(expected and host and host != expected)

    def is_suspicious(self, url: str) -> bool:
        return any(p.search(url) for p in self.suspicious_patterns)

    def is_shortener(self, url: str) -> bool:
        host = self.extract_host(url)
        return any(host == d or host.endswith('.' + d) for d in self.shortener_domains)

    def is_raw_ip(self, url: str) -> bool:
        host = self.extract_host(url)
        try:
            return isinstance(ipaddress.ip_address(host), ipaddress.IPv4Address)
        except ValueError:
            return False

    def is_insecure(self, url: str) -> bool:
        return url.lower().startswith('http://')

    def authenticity_score(self, urls: Iterable[str], sender_address: str) -> int:
        """
        Start at 100 and subtract every penalty each URL triggers.

        Returns:
            Score clamped to [0, 100]; 100 when there are no URLs
        """
        score = 100
        for url in urls:
            if self.is_mismatch(url, sender_address):
                score -= self.MISMATCH_PENALTY
            if self.is_suspicious(url):
                score -= self.SUSPICIOUS_PATTERN_PENALTY
            if self.is_shortener(url):
                score -= self.SHORTENER_PENALTY
            if self.is_raw_ip(url):
                score -= self.RAW_IP_PENALTY
            if self.is_insecure(url):
                score -= self.INSECURE_SCHEME_PENALTY
        return max(0, min(100, score))

    def domain_mismatch(self, urls: Iterable[str], sender_address: str) -> bool:
        return any(self.is_mismatch(url, sender_address) for url in urls)


class KeywordAnalyzer:
    """Case-insensitive substring counts over fixed vocabularies"""

    def __init__(self):
        self.urgency_keywords = [
            'urgent', 'immediate', 'critical', 'asap', 'action required',
            'verify now', 'confirm immediately', 'expires soon', 'limited time'
        ]
        self.credential_keywords = [
            'password', 'credentials', 'login', 'account', 'verify account',
            'update account', 'suspended', 'locked', 'reset password'
        ]
        self.financial_keywords = [
            'payment', 'invoice', 'refund', 'transaction', 'wire transfer',
            'unauthorized charge', 'billing', 'overdue'
        ]
        self.security_keywords = [
            'security breach', 'unauthorized access', 'suspicious activity',
            'fraud detected', 'verify identity', 'security alert'
        ]
        self.threat_keywords = [
            'account closed', 'terminate', 'expire', 'delete', 'permanent',
            'legal action', 'suspended'
        ]
        self.call_to_action_keywords = [
            'click here', 'verify', 'confirm', 'update', 'reactivate',
            'restore', 'unlock', 'click the link'
        ]
        self.suspicious_phrases = [
            'click the link below', 'verify your identity', 'confirm your account',
            'update your information', 'your account has been'
        ]
        self.authority_keywords = [
            'bank', 'irs', 'fbi', 'government', 'court', 'legal', 'police',
            'federal', 'official'
        ]
        self.scarcity_keywords = [
            'limited time', 'expires soon', 'last chance', 'only today',
            'act now', "don't miss"
        ]
        self.consistency_keywords = [
            'your account', 'your profile', 'your information', 'we noticed',
            'your data', 'your details'
        ]

    def count(self, text: str, keywords: List[str]) -> int:
        """Non-overlapping occurrences of every keyword, summed"""
        text = (text or '').lower()
        return sum(text.count(keyword) for keyword in keywords)


class SenderAnalyzer:
    """Sender address authenticity from address patterns and domain reputation"""

    def __init__(self, trusted_domains: Optional[Iterable[str]] = None):
        self.trusted_domains = set(trusted_domains) if trusted_domains is not None else {
            'securebank.com', 'bank.com', 'company.com', 'corp.com', *PERSONA_DOMAINS
        }
        self.suspicious_patterns = [
            re.compile(r'noreply|no-reply|donotreply', re.IGNORECASE),
            re.compile(r'support[0-9]|security[0-9]|admin[0-9]', re.IGNORECASE),
            re.compile(r'[a-z]+[0-9]+@', re.IGNORECASE),
        ]
        self.digit_run = re.compile(r'[0-9]{4,}')

    def has_suspicious_pattern(self, sender_address: str) -> bool:
        return any(p.search(sender_address or '') for p in self.suspicious_patterns)

    def domain_reputation(self, sender_address: str) -> int:
        domain = sender_domain(sender_address)
        if not domain:
            return 50

        if domain in self.trusted_domains or registered_domain(domain) in self.trusted_domains:
            return 90
        if len(domain) < 8 or 'free' in domain or 'click' in domain:
            return 30
        return 60

    def authenticity_score(self, sender_address: str) -> int:
        if not sender_address:
            return 50

        address = sender_address.lower()
        score = 100
        if self.has_suspicious_pattern(address):
            score -= 30
        score += self.domain_reputation(address) - 50
        if 'noreply' in address or 'no-reply' in address:
            score -= 10
        if self.digit_run.search(address):
            score -= 15
        return max(0, min(100, score))


class GrammarAnalyzer:
    """Regex heuristics for grammar, spelling and professionalism"""

    def __init__(self):
        self.grammar_mistakes = [
            re.compile(p, re.IGNORECASE) for p in (
                r'youre account', r'your account is been', r'please to click',
                r'kindly do the needful', r'urgent require', r'is been', r'has been been',
            )
        ]
        self.professional_indicators = [
            'please', 'thank you', 'sincerely', 'best regards', 'regards',
            'dear', 'yours truly', 'respectfully'
        ]
        self.greeting_pattern = re.compile(
            r'\b(dear|hello|hi|greetings|good morning|good afternoon)\b', re.IGNORECASE
        )
        self.closing_pattern = re.compile(
            r'\b(sincerely|best regards|regards|yours truly|respectfully|thank you|thanks)\b',
            re.IGNORECASE
        )
        self.repeated_chars = re.compile(r'(.)\1{3,}')
        self.special_chars = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>/?]')
        self.phone_pattern = re.compile(r'\d{3}[-.\s]?\d{3}[-.\s]?\d{4}')
        self.company_pattern = re.compile(r'company|corporation|inc\.|llc|limited', re.IGNORECASE)
        self.punctuation_run = re.compile(r'[!?]{2,}')

    def grammar_score(self, content: str) -> int:
        if not content or len(content) < 10:
            return 50

        score = 100
        for mistake in self.grammar_mistakes:
            if mistake.search(content):
                score -= 15

        words = content.split()
        all_caps = sum(1 for w in words if w.isupper() and len(w) > 2)
        if all_caps > len(words) * 0.1:
            score -= 10
        return max(0, min(100, score))

    def spelling_score(self, content: str) -> int:
        if not content:
            return 50

        repeated = [m.group(0) for m in self.repeated_chars.finditer(content)]
        if len(repeated) > 2:
            return 40
        if len(self.special_chars.findall(content)) / len(content) > 0.1:
            return 45
        return 70

    def has_greeting(self, content: str) -> bool:
        return bool(self.greeting_pattern.search(content or ''))

    def has_closing(self, content: str) -> bool:
        return bool(self.closing_pattern.search(content or ''))

    def professionalism_score(self, content: str) -> int:
        if not content:
            return 50

        lowered = content.lower()
        score = 50
        score += 5 * sum(1 for i in self.professional_indicators if i in lowered)
        if self.has_greeting(content) and self.has_closing(content):
            score += 20
        if self.phone_pattern.search(content):
            score += 10
        if self.company_pattern.search(content):
            score += 5
        return min(100, score)

    def has_excessive_punctuation(self, subject: str) -> bool:
        return bool(self.punctuation_run.search(subject or ''))


class RiskFeatureExtractor:
    """Derives a FeatureSet from one email record. Never raises."""

    def __init__(self,
                 url_analyzer: UrlAnalyzer = None,
                 keyword_analyzer: KeywordAnalyzer = None,
                 sender_analyzer: SenderAnalyzer = None,
                 grammar_analyzer: GrammarAnalyzer = None):
        self.urls = url_analyzer or UrlAnalyzer()
        self.keywords = keyword_analyzer or KeywordAnalyzer()
        self.sender = sender_analyzer or SenderAnalyzer()
        self.grammar = grammar_analyzer or GrammarAnalyzer()

    def _coerce(self, email) -> EmailRecord:
        if isinstance(email, EmailRecord):
            return email
        if email is None:
            return EmailRecord()
        try:
            return EmailRecord.model_validate(dict(email))
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Malformed email input, scoring text fields only: {e}")
            data = email if isinstance(email, Mapping) else {}
            return EmailRecord(
                subject=str(data.get('subject') or ''),
                content=str(data.get('content') or ''),
                sender_address=str(data.get('senderAddress') or data.get('senderEmail') or ''),
            )

    def extract(self, email) -> FeatureSet:
        record = self._coerce(email)

        subject_raw = record.subject or ''
        content_raw = record.content or ''
        subject = subject_raw.lower()
        content = content_raw.lower()
        sender = (record.sender_address or '').lower()
        urls = [u for u in record.urls if u] or self.urls.extract_urls(content_raw)

        kw = self.keywords
        full_text = f"{subject} {content}"

        features = FeatureSet(
            has_urls=len(urls) > 0,
            url_count=len(urls),
            url_authenticity_score=self.urls.authenticity_score(urls, sender),
            has_suspicious_urls=any(self.urls.is_suspicious(u) for u in urls),
            has_shortener=any(self.urls.is_shortener(u) for u in urls),
            has_raw_ip=any(self.urls.is_raw_ip(u) for u in urls),
            has_insecure_scheme=any(self.urls.is_insecure(u) for u in urls),
            domain_mismatch=self.urls.domain_mismatch(urls, sender),

            urgency_keyword_count=kw.count(full_text, kw.urgency_keywords),
            credential_keyword_count=kw.count(full_text, kw.credential_keywords),
            financial_keyword_count=kw.count(full_text, kw.financial_keywords),
            security_keyword_count=kw.count(full_text, kw.security_keywords),
            threat_keyword_count=kw.count(full_text, kw.threat_keywords),
            call_to_action_count=kw.count(content, kw.call_to_action_keywords),
            suspicious_phrase_count=kw.count(content, kw.suspicious_phrases),

            authority_impersonation=kw.count(content, kw.authority_keywords) > 0,
            scarcity_tactics=kw.count(content, kw.scarcity_keywords) > 0,
            consistency_tactics=kw.count(content, kw.consistency_keywords) >= 2,

            sender_authenticity_score=self.sender.authenticity_score(sender),
            has_suspicious_sender_pattern=self.sender.has_suspicious_pattern(sender),
            sender_domain_reputation=self.sender.domain_reputation(sender),

            grammar_score=self.grammar.grammar_score(content_raw),
            spelling_score=self.grammar.spelling_score(content_raw),
            professionalism_score=self.grammar.professionalism_score(content_raw),
            has_professional_greeting=self.grammar.has_greeting(content_raw),
            has_professional_closing=self.grammar.has_closing(content_raw),

            subject_length=len(subject_raw),
            content_length=len(content_raw),
            has_excessive_punctuation=self.grammar.has_excessive_punctuation(subject_raw),
            subject_all_caps=subject_raw.isupper() and len(subject_raw) > 10,
        )

        features.total_urgency_score = (
            features.urgency_keyword_count * 3
            + (5 if features.has_excessive_punctuation else 0)
            + (8 if features.subject_all_caps else 0)
        )
        features.total_suspicion_score = (
            features.credential_keyword_count * 4
            + features.security_keyword_count * 3
            + features.threat_keyword_count * 3
            + features.call_to_action_count * 2
            + (10 if features.url_authenticity_score < 50 else 0)
            + (8 if features.sender_authenticity_score < 50 else 0)
        )
        return features
