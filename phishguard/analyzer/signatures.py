"""Local phishing signature database: domain lists and pattern libraries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

import yaml

from ..utils.domains import matches_domain_suffix, normalize_domain

logger = logging.getLogger(__name__)


class SignatureType(str, Enum):
    """Type of signature match."""

    BLOCKLIST = "BLOCKLIST"
    ALLOWLIST = "ALLOWLIST"
    PATTERN = "PATTERN"


@dataclass(frozen=True)
class SignaturePattern:
    """One row of a pattern library."""

    regex: re.Pattern
    tag: str
    description: str
    weight: int

    @classmethod
    def compile(cls, pattern: str, tag: str, description: str, weight: int) -> "SignaturePattern":
        return cls(re.compile(pattern, re.IGNORECASE), tag, description, weight)


@dataclass(frozen=True)
class SignatureMatch:
    """Result of a signature check."""

    matched: bool
    type: SignatureType
    pattern: Optional[str] = None
    description: Optional[str] = None
    tag: Optional[str] = None
    weight: int = 0


CONTENT_PATTERN_WEIGHT = 20
URL_PATTERN_WEIGHT = 15

# Content tags that count toward the DOM urgency heuristic
URGENCY_TAGS = frozenset({"urgency", "account_suspension", "account_closure"})

BUILTIN_BLOCKED_DOMAINS: list[str] = [
    "secure-paypal-login.tk",
    "accounts-google-verify.ml",
    "microsoft-account-update.ga",
    "apple-id-confirm.cf",
    "amazon-security-alert.gq",
    "netflix-billing-update.xyz",
    "chase-secure-login.top",
    "bankofamerica-verify.buzz",
    "wellsfargo-alert.club",
    "instagram-verify.icu",
    "facebook-security.work",
    "linkedin-confirm.online",
    "dropbox-verify.site",
    "yahoo-account-recovery.info",
    "icloud-unlock.biz",
]

BUILTIN_ALLOWLISTED_DOMAINS: list[str] = [
    "google.com",
    "microsoft.com",
    "apple.com",
    "amazon.com",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "github.com",
    "netflix.com",
    "paypal.com",
    "chase.com",
    "bankofamerica.com",
    "wellsfargo.com",
    "dropbox.com",
    "outlook.com",
    "live.com",
    "microsoftonline.com",
    "office.com",
    "office365.com",
    "yahoo.com",
    "icloud.com",
    "googleapis.com",
    "gstatic.com",
    "cloudflare.com",
    "amazonaws.com",
    "stripe.com",
]

# (pattern, tag, description)
BUILTIN_CONTENT_PATTERNS: list[tuple[str, str, str]] = [
    (
        r"account\s+(has\s+been\s+)?(suspended|locked|disabled|compromised)",
        "account_suspension",
        "Account suspension threat",
    ),
    (
        r"verify\s+your\s+(identity|account|information)",
        "identity_verification",
        "Identity verification request",
    ),
    (
        r"urgent|immediately|within\s+\d+\s+hours?",
        "urgency",
        "Urgency pressure tactic",
    ),
    (
        r"(enter|provide|confirm)\s+your\s+(password|credentials|ssn|social\s+security)",
        "credential_harvesting",
        "Credential harvesting",
    ),
    (
        r"unusual\s+(activity|sign[\s-]?in|login)",
        "unusual_activity",
        "Unusual activity alert",
    ),
    (
        r"click\s+(here|below)\s+to\s+(verify|confirm|update|restore)",
        "action_link",
        "Action urgency link",
    ),
    (
        r"your\s+account\s+will\s+be\s+(closed|terminated|deleted)",
        "account_closure",
        "Account closure threat",
    ),
]

BUILTIN_URL_PATTERNS: list[tuple[str, str, str]] = [
    (
        r"login[-_]?(paypal|microsoft|google|apple|amazon|chase|bank)",
        "brand_login",
        "Brand name in login subdomain",
    ),
    (
        r"(verify|secure|confirm|update)[-_]?(account|identity|payment)",
        "verification_keyword",
        "Verification keyword in URL",
    ),
    (
        r"[?&](email|user|username|pass|password|ssn|cc|card)=",
        "credential_params",
        "Credential parameters in query string",
    ),
]


def _build_library(rows: Iterable[tuple[str, str, str]], weight: int) -> list[SignaturePattern]:
    return [SignaturePattern.compile(pattern, tag, description, weight) for pattern, tag, description in rows]


class SignatureDatabase:
    """In-memory signature database.

    Domain lookups match exactly or by parent domain (`x.y.blocked.com` hits
    `blocked.com`). Pattern libraries report each matching row once, however
    many times it occurs in the input.
    """

    def __init__(
        self,
        blocked_domains: Optional[Iterable[str]] = None,
        allowlisted_domains: Optional[Iterable[str]] = None,
        content_patterns: Optional[list[SignaturePattern]] = None,
        url_patterns: Optional[list[SignaturePattern]] = None,
    ):
        self._blocked: set[str] = set()
        self._allowlisted: set[str] = set()
        for domain in BUILTIN_BLOCKED_DOMAINS if blocked_domains is None else blocked_domains:
            self.add_blocked_domain(domain)
        for domain in BUILTIN_ALLOWLISTED_DOMAINS if allowlisted_domains is None else allowlisted_domains:
            self.add_allowlisted_domain(domain)

        self.content_patterns = (
            list(content_patterns)
            if content_patterns is not None
            else _build_library(BUILTIN_CONTENT_PATTERNS, CONTENT_PATTERN_WEIGHT)
        )
        self.url_patterns = (
            list(url_patterns)
            if url_patterns is not None
            else _build_library(BUILTIN_URL_PATTERNS, URL_PATTERN_WEIGHT)
        )

    @property
    def signature_count(self) -> int:
        return (
            len(self._blocked)
            + len(self._allowlisted)
            + len(self.content_patterns)
            + len(self.url_patterns)
        )

    def check_domain(self, domain: str) -> SignatureMatch:
        """Check a domain (or any parent) against the blocklist."""
        normalized = normalize_domain(domain)
        hit = matches_domain_suffix(normalized, self._blocked)
        if hit is None:
            return SignatureMatch(matched=False, type=SignatureType.BLOCKLIST)
        return SignatureMatch(
            matched=True,
            type=SignatureType.BLOCKLIST,
            pattern=hit,
            description=(
                "Known phishing domain" if hit == normalized else "Subdomain of known phishing domain"
            ),
        )

    def is_allowlisted(self, domain: str) -> bool:
        return matches_domain_suffix(normalize_domain(domain), self._allowlisted) is not None

    def match_content(self, text: str) -> list[SignatureMatch]:
        return _match_library(self.content_patterns, text or "")

    def match_url_pattern(self, url: str) -> list[SignatureMatch]:
        return _match_library(self.url_patterns, url or "")

    def add_blocked_domain(self, domain: str) -> None:
        normalized = normalize_domain(domain)
        if normalized:
            self._blocked.add(normalized)

    def add_allowlisted_domain(self, domain: str) -> None:
        normalized = normalize_domain(domain)
        if normalized:
            self._allowlisted.add(normalized)


def _match_library(library: list[SignaturePattern], text: str) -> list[SignatureMatch]:
    return [
        SignatureMatch(
            matched=True,
            type=SignatureType.PATTERN,
            pattern=row.regex.pattern,
            description=row.description,
            tag=row.tag,
            weight=row.weight,
        )
        for row in library
        if row.regex.search(text)
    ]


def load_signature_overrides(config_dir: Path) -> dict[str, list[SignaturePattern]]:
    """Load extra pattern rows from config/signatures.yaml (optional).

    Expected shape:

        content_patterns:
          - pattern: "gift\\s+card"
            tag: gift_card
            description: Gift card payment request
            weight: 20
        url_patterns:
          - pattern: "wallet[-_]connect"
            tag: wallet_connect
    """
    path = Path(config_dir or ".") / "signatures.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse signatures.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring signatures.yaml: expected a mapping, got %s", type(data).__name__)
        return {}

    def _coerce_rows(raw, default_weight: int, label: str) -> list[SignaturePattern]:
        rows: list[SignaturePattern] = []
        for entry in raw or []:
            if not isinstance(entry, dict):
                continue
            pattern = str(entry.get("pattern") or "").strip()
            if not pattern:
                continue
            tag = str(entry.get("tag") or "").strip() or f"custom_{label}"
            description = str(entry.get("description") or "").strip() or f"Custom {label} pattern"
            try:
                weight = int(entry.get("weight", default_weight))
            except (TypeError, ValueError):
                weight = default_weight
            try:
                rows.append(SignaturePattern.compile(pattern, tag, description, weight))
            except re.error as exc:
                logger.warning("Skipping invalid %s pattern %r: %s", label, pattern, exc)
        return rows

    return {
        "content_patterns": _coerce_rows(data.get("content_patterns"), CONTENT_PATTERN_WEIGHT, "content"),
        "url_patterns": _coerce_rows(data.get("url_patterns"), URL_PATTERN_WEIGHT, "url"),
    }
