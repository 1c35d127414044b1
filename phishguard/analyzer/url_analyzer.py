"""URL structure scoring for phishing detection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit

import idna
from rapidfuzz.distance import Levenshtein

from ..utils.domains import registered_domain, split_domain

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    """Risk level of a URL by structure alone."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        if score >= 50:
            return cls.CRITICAL
        if score >= 30:
            return cls.HIGH
        if score >= 15:
            return cls.MEDIUM
        return cls.LOW


@dataclass(frozen=True)
class UrlAnalysisResult:
    """Result of URL analysis."""

    url: str
    score: int
    risk_level: RiskLevel
    signals: tuple[str, ...] = ()


# Cyrillic code points that render like Latin letters
CYRILLIC_LOOKALIKES = {
    "\u0430": "a",  # а
    "\u0435": "e",  # е
    "\u043e": "o",  # о
    "\u0440": "p",  # р
    "\u0441": "c",  # с
    "\u0443": "y",  # у
    "\u0445": "x",  # х
    "\u043d": "h",  # н
    "\u0456": "i",  # і (Ukrainian)
    "\u0458": "j",  # ј (Serbian)
    "\u0455": "s",  # ѕ (Macedonian)
    "\u0501": "d",  # ԁ
}

DEFAULT_TARGET_BRANDS: list[str] = [
    "google.com",
    "facebook.com",
    "microsoft.com",
    "apple.com",
    "amazon.com",
    "netflix.com",
    "paypal.com",
    "instagram.com",
    "twitter.com",
    "linkedin.com",
    "github.com",
    "dropbox.com",
    "chase.com",
    "bankofamerica.com",
    "wellsfargo.com",
    "outlook.com",
    "yahoo.com",
    "icloud.com",
]

# Abuse frequency; unknown TLDs fall back to UNKNOWN_TLD_SCORE
DEFAULT_SUSPICIOUS_TLDS: dict[str, int] = {
    "tk": 25,
    "ml": 25,
    "ga": 25,
    "cf": 25,
    "gq": 25,
    "top": 20,
    "xyz": 15,
    "buzz": 15,
    "club": 15,
    "work": 15,
    "icu": 15,
    "online": 10,
    "site": 10,
    "info": 10,
    "biz": 10,
    "click": 10,
    "link": 10,
    "live": 5,
    "store": 5,
    "space": 5,
}

DEFAULT_SAFE_TLDS: set[str] = {
    "com",
    "org",
    "net",
    "edu",
    "gov",
    "mil",
    "int",
    "co",
    "io",
    "dev",
    "app",
}

DEFAULT_BRAND_KEYWORDS: set[str] = {
    "login",
    "signin",
    "account",
    "secure",
    "verify",
    "update",
    "confirm",
    "microsoft",
    "google",
    "apple",
    "amazon",
    "paypal",
    "bank",
    "chase",
    "netflix",
}

UNKNOWN_TLD_SCORE = 5
MALFORMED_SCORE = 30

DANGEROUS_SCHEMES: list[tuple[str, int]] = [
    ("javascript:", 50),
    ("vbscript:", 50),
    ("data:", 40),
]

_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
_DECIMAL_IP_RE = re.compile(r"^\d{7,10}$")
_INVALID_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`]")


class UrlAnalyzer:
    """Scores a URL's structure for phishing likelihood. Pure, no I/O."""

    def __init__(
        self,
        target_brands: Optional[Iterable[str]] = None,
        suspicious_tlds: Optional[dict[str, int]] = None,
        safe_tlds: Optional[Iterable[str]] = None,
        brand_keywords: Optional[Iterable[str]] = None,
    ):
        self.target_brands = [b.lower() for b in (target_brands or DEFAULT_TARGET_BRANDS)]
        self.suspicious_tlds = {
            t.lower(): int(s) for t, s in (suspicious_tlds or DEFAULT_SUSPICIOUS_TLDS).items()
        }
        self.safe_tlds = {t.lower() for t in (safe_tlds or DEFAULT_SAFE_TLDS)}
        self.brand_keywords = {k.lower() for k in (brand_keywords or DEFAULT_BRAND_KEYWORDS)}
        self._brand_labels = {b.split(".")[0] for b in self.target_brands}

    def analyze(self, url: str) -> UrlAnalysisResult:
        """Analyze a URL; detector scores add up with no cap."""
        signals: list[str] = []
        score = 0

        scheme_score = self.detect_dangerous_scheme(url)
        if scheme_score:
            signals.append("dangerous_scheme")
            score += scheme_score

        parsed = _parse_host(url)
        if parsed is None:
            if scheme_score:
                # javascript:/data: payloads carry no host to inspect
                return _result(url, score, signals)
            return UrlAnalysisResult(
                url=url,
                score=MALFORMED_SCORE,
                risk_level=RiskLevel.MEDIUM,
                signals=("malformed",),
            )
        host, bracketed = parsed

        ip_score = self.detect_ip_host(host, bracketed)

        # Punycode and Unicode spellings of one host must score the same
        display_host = _decode_punycode(host)

        homoglyph_score = self.detect_homoglyphs(display_host)
        if homoglyph_score:
            signals.append("homoglyph")
            score += homoglyph_score

        bare_host = display_host[4:] if display_host.startswith("www.") else display_host
        typosquat_score, _brand = self.detect_typosquat(bare_host)
        if typosquat_score:
            signals.append("typosquat")
            score += typosquat_score

        tld_score = self.score_tld(display_host.rsplit(".", 1)[-1])
        if tld_score:
            signals.append("suspicious_tld")
            score += tld_score

        subdomain_score = self.detect_subdomain_abuse(display_host)
        if subdomain_score:
            signals.append("subdomain_abuse")
            score += subdomain_score

        if ip_score:
            signals.append("ip_url")
            score += ip_score

        return _result(url, score, signals)

    def detect_dangerous_scheme(self, url: str) -> int:
        lowered = (url or "").strip().lower()
        for prefix, points in DANGEROUS_SCHEMES:
            if lowered.startswith(prefix):
                return points
        return 0

    def detect_homoglyphs(self, host: str) -> int:
        """Flag mixed Latin/Cyrillic hosts, and pure Cyrillic hosts spelling a brand."""
        has_latin = False
        has_cyrillic = False
        for char in host:
            if char in ".-":
                continue
            if char in CYRILLIC_LOOKALIKES or _is_cyrillic(char):
                has_cyrillic = True
            elif "a" <= char.lower() <= "z":
                has_latin = True

        if has_latin and has_cyrillic:
            return 40

        if has_cyrillic:
            for label in host.split("."):
                if self.normalize_homoglyphs(label) in self._brand_labels:
                    return 35

        return 0

    @staticmethod
    def normalize_homoglyphs(text: str) -> str:
        """Replace Cyrillic lookalikes with their Latin equivalents."""
        return "".join(CYRILLIC_LOOKALIKES.get(char, char) for char in text.lower() if char != "-")

    def detect_typosquat(self, host: str) -> tuple[int, Optional[str]]:
        """Compare the second-level label against the brand list by edit distance."""
        _, label, _ = split_domain(host)
        label = label.lower()
        if len(label) < 4 or label in self._brand_labels:
            return 0, None

        best: Optional[tuple[int, str]] = None
        for brand in self.target_brands:
            brand_label = brand.split(".")[0]
            if abs(len(brand_label) - len(label)) > 2:
                continue
            distance = Levenshtein.distance(label, brand_label, score_cutoff=2)
            if 0 < distance <= 2 and (best is None or distance < best[0]):
                best = (distance, brand)

        if best is None:
            return 0, None
        distance, brand = best
        logger.debug("Typosquat candidate %s -> %s (distance %d)", host, brand, distance)
        return (30 if distance == 1 else 20), brand

    def score_tld(self, tld: str) -> int:
        normalized = tld.lower()
        if normalized in self.safe_tlds:
            return 0
        return self.suspicious_tlds.get(normalized, UNKNOWN_TLD_SCORE)

    def detect_subdomain_abuse(self, host: str) -> int:
        if len(host.split(".")) > 4:
            return 15

        subdomain, _, _ = split_domain(host)
        if not subdomain:
            return 0
        registered = registered_domain(host)
        labels = {label.lower() for label in subdomain.split(".")}
        if labels & self.brand_keywords and registered not in self.target_brands:
            return 25
        return 0

    @staticmethod
    def detect_ip_host(host: str, bracketed: bool = False) -> int:
        if _IPV4_RE.match(host):
            return 20
        if bracketed:
            return 20
        if _DECIMAL_IP_RE.match(host) and 0 < int(host) <= 0xFFFFFFFF:
            return 25
        return 0


def _result(url: str, score: int, signals: list[str]) -> UrlAnalysisResult:
    return UrlAnalysisResult(
        url=url,
        score=score,
        risk_level=RiskLevel.from_score(score),
        signals=tuple(signals),
    )


def _is_cyrillic(char: str) -> bool:
    return "\u0400" <= char <= "\u052f"


def _parse_host(url: str) -> Optional[tuple[str, bool]]:
    """Return (raw hostname, bracketed) or None when the URL cannot be parsed.

    urlsplit leaves Unicode hostnames untranscoded, which the homoglyph check relies on.
    """
    try:
        parts = urlsplit((url or "").strip())
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc or not host:
        return None
    if _INVALID_HOST_CHARS.search(host):
        return None
    return host.rstrip("."), "[" in parts.netloc


def _decode_punycode(host: str) -> str:
    if "xn--" not in host:
        return host
    try:
        return idna.decode(host)
    except (idna.IDNAError, UnicodeError):
        return host


_default_analyzer = UrlAnalyzer()


def analyze_url(url: str) -> UrlAnalysisResult:
    """Analyze a URL with the built-in brand and TLD tables."""
    return _default_analyzer.analyze(url)
