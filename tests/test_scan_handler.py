"""Tests for the heuristic-only scan handler."""

import pytest

from phishguard.analyzer import SignatureDatabase, ThreatLevel, UrlAnalyzer
from phishguard.analyzer.threat_scorer import DomSignal
from phishguard.pipeline import ScanHandler, ScanRequest


@pytest.fixture
def handler():
    return ScanHandler(UrlAnalyzer(), SignatureDatabase())


def test_blocklisted_domain_warns(handler):
    verdict = handler.handle_scan(ScanRequest(url="https://secure-paypal-login.tk/verify", title="PayPal"))
    assert verdict.domain == "secure-paypal-login.tk"
    assert verdict.level == ThreatLevel.CONFIRMED_PHISHING
    assert verdict.score == 100
    assert verdict.should_warn


def test_allowlisted_domain_strips_www(handler):
    verdict = handler.handle_scan(ScanRequest(url="https://www.google.com/search?q=test"))
    assert verdict.domain == "google.com"
    assert verdict.level == ThreatLevel.SAFE
    assert not verdict.should_warn
    assert verdict.reasoning == "Domain is allowlisted"


def test_heuristics_alone_can_warn(handler):
    verdict = handler.handle_scan(
        ScanRequest(
            url="http://paypal.secure-verify-account.tk/login?password=x",
            page_text="Your account has been suspended. Verify your identity immediately.",
        )
    )
    assert verdict.level == ThreatLevel.SUSPICIOUS
    assert 25 <= verdict.score < 55
    assert verdict.should_warn
    assert verdict.confidence == 0.5
    assert "url:verification_keyword" in verdict.triggered_signals
    assert "content:account_suspension" in verdict.triggered_signals


def test_without_page_text_content_is_skipped(handler):
    verdict = handler.handle_scan(ScanRequest(url="https://example.org/"))
    assert not any(s.startswith("content:") for s in verdict.triggered_signals)
    assert verdict.reasoning == "ML model not loaded"
    assert verdict.level == ThreatLevel.SAFE


def test_dom_signals_are_scored(handler):
    quiet = handler.handle_scan(ScanRequest(url="https://example.org/"))
    noisy = handler.handle_scan(
        ScanRequest(
            url="https://example.org/",
            dom_signals=DomSignal(has_password_form=True, has_credit_card_form=True, link_mismatch_count=3),
        )
    )
    assert noisy.score > quiet.score
    assert "dom:credit_card_form" in noisy.triggered_signals


def test_verdict_serializes(handler):
    data = handler.handle_scan(ScanRequest(url="https://gogle.com")).to_dict()
    assert data["level"] == "SAFE"
    assert data["domain"] == "gogle.com"
    assert data["triggered_signals"] == ["url:typosquat"]
