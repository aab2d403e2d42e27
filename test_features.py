"""
Tests for the risk feature extractor: URL authenticity, keyword counts,
sender and content-quality heuristics.
"""
import pytest

from phishdrill.core.features import (
    FeatureSet,
    GrammarAnalyzer,
    KeywordAnalyzer,
    RiskFeatureExtractor,
    SenderAnalyzer,
    UrlAnalyzer,
)


@pytest.fixture
def extractor():
    return RiskFeatureExtractor()


@pytest.fixture
def urls():
    return UrlAnalyzer()


# =============================================================================
# URL AUTHENTICITY
# =============================================================================

class TestUrlAuthenticity:

    def test_no_urls_scores_100(self, urls):
        assert urls.authenticity_score([], "it@bank.com") == 100

    def test_domain_mismatch_costs_30(self, extractor):
        features = extractor.extract({
            "urls": ["https://evil.test/login"],
            "senderAddress": "it@bank.com",
        })
        assert features.url_authenticity_score == 70
        assert features.domain_mismatch is True
        assert features.has_urls is True
        assert features.url_count == 1

    def test_all_penalties_clamp_to_zero(self, urls):
        # mismatch 30 + "verify" 25 + raw IP 35 + http 15
        assert urls.authenticity_score(["http://192.168.1.10/verify"], "it@bank.com") == 0

    def test_www_prefix_is_not_a_mismatch(self, urls):
        assert urls.is_mismatch("https://www.bank.com/statements", "it@bank.com") is False

    def test_shortener_hosts(self, urls):
        assert urls.is_shortener("https://bit.ly/abc") is True
        assert urls.is_shortener("https://www.tinyurl.com/x") is True
        assert urls.is_shortener("https://notbit.ly/x") is False

    def test_raw_ip_detection(self, urls):
        assert urls.is_raw_ip("http://10.0.0.1/portal") is True
        assert urls.is_raw_ip("https://bank.com/portal") is False

    def test_score_never_increases_with_more_urls(self, urls):
        candidates = [
            "https://bank.com/home",
            "https://evil.test/a",
            "http://bit.ly/x",
            "http://10.0.0.1/verify",
            "https://free-prizes.com/click",
        ]
        previous = 100
        for i in range(len(candidates) + 1):
            score = urls.authenticity_score(candidates[:i], "it@bank.com")
            assert 0 <= score <= 100
            assert score <= previous
            previous = score

    def test_urls_fall_back_to_content(self, extractor):
        features = extractor.extract({
            "content": "Open http://10.0.0.1/portal to continue",
            "senderAddress": "it@bank.com",
        })
        assert features.url_count == 1
        assert features.has_raw_ip is True
        assert features.has_insecure_scheme is True


# =============================================================================
# KEYWORDS
# =============================================================================

class TestKeywords:

    def test_counts_every_occurrence(self):
        kw = KeywordAnalyzer()
        assert kw.count("Urgent! urgent action required", kw.urgency_keywords) == 3

    def test_empty_text(self):
        kw = KeywordAnalyzer()
        assert kw.count(None, kw.credential_keywords) == 0

    def test_call_to_action_only_counts_content(self, extractor):
        features = extractor.extract({"subject": "click here", "content": ""})
        assert features.call_to_action_count == 0


# =============================================================================
# SENDER / CONTENT QUALITY
# =============================================================================

class TestSender:

    def test_empty_sender_is_neutral(self):
        assert SenderAnalyzer().authenticity_score("") == 50

    def test_trusted_domain(self):
        sender = SenderAnalyzer()
        assert sender.domain_reputation("it@bank.com") == 90
        assert sender.authenticity_score("it@bank.com") == 100

    def test_generic_prefix_on_short_domain(self):
        # -30 suspicious pattern, reputation 30 -> -20
        assert SenderAnalyzer().authenticity_score("admin7@a.io") == 50


class TestContentQuality:

    def test_short_content_grammar_is_neutral(self):
        assert GrammarAnalyzer().grammar_score("short") == 50

    def test_known_mistakes_are_penalised(self):
        text = "Your account is been locked please to click below"
        # "your account is been", "please to click", "is been"
        assert GrammarAnalyzer().grammar_score(text) == 55

    def test_professionalism(self):
        text = "Dear team, please review the rota. Best regards"
        # four indicators (+20), greeting and closing (+20)
        assert GrammarAnalyzer().professionalism_score(text) == 90


# =============================================================================
# EXTRACTOR
# =============================================================================

class TestExtractor:

    def test_missing_fields_default(self, extractor):
        features = extractor.extract({"subject": None, "content": None, "urls": None})
        assert isinstance(features, FeatureSet)
        assert features.has_urls is False
        assert features.url_authenticity_score == 100
        assert features.sender_authenticity_score == 50

    def test_none_email(self, extractor):
        assert extractor.extract(None).subject_length == 0

    def test_composite_urgency_score(self, extractor):
        features = extractor.extract({"subject": "URGENT ACTION REQUIRED!!", "content": ""})
        # 2 urgency keywords * 3, punctuation run 5, all-caps subject 8
        assert features.has_excessive_punctuation is True
        assert features.subject_all_caps is True
        assert features.total_urgency_score == 19

    def test_composite_suspicion_score(self, extractor):
        features = extractor.extract({
            "content": "Reset password now, click here",
            "senderAddress": "it@bank.com",
        })
        # password 4, "reset password" 4, "click here" 2
        assert features.credential_keyword_count == 2
        assert features.call_to_action_count == 1
        assert features.total_suspicion_score == 10

    def test_accepts_email_record(self, extractor, make_email):
        features = extractor.extract(make_email(content="Please confirm your account"))
        assert features.suspicious_phrase_count == 1
        assert features.to_dict()["suspicious_phrase_count"] == 1
