"""Page content received from the DOM extraction collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field

MAX_TEXT_LENGTH = 10_000


@dataclass
class FormSummary:
    """Extracted form metadata."""

    action: str = ""
    method: str = "GET"
    has_password_field: bool = False
    has_credit_card_field: bool = False
    input_count: int = 0


@dataclass
class LinkSummary:
    """An anchor with its displayed text; `mismatch` when the text names another host."""

    href: str
    text: str = ""
    mismatch: bool = False


@dataclass
class BrandSignals:
    """Brand impersonation signals."""

    detected_brands: list[str] = field(default_factory=list)
    brand_domain_mismatch: bool = False


@dataclass
class PageContent:
    """Complete extraction result for a single page."""

    url: str
    title: str = ""
    text: str = ""
    forms: list[FormSummary] = field(default_factory=list)
    links: list[LinkSummary] = field(default_factory=list)
    brand_signals: BrandSignals = field(default_factory=BrandSignals)

    def __post_init__(self):
        if len(self.text) > MAX_TEXT_LENGTH:
            self.text = self.text[:MAX_TEXT_LENGTH]

    @classmethod
    def from_dict(cls, data: dict) -> "PageContent":
        """Build from the collaborator's JSON payload (camelCase keys)."""
        forms = [
            FormSummary(
                action=str(f.get("action") or ""),
                method=str(f.get("method") or "GET").upper(),
                has_password_field=bool(f.get("hasPasswordField", False)),
                has_credit_card_field=bool(f.get("hasCreditCardField", False)),
                input_count=int(f.get("inputCount") or 0),
            )
            for f in data.get("forms") or []
            if isinstance(f, dict)
        ]
        links = [
            LinkSummary(
                href=str(link.get("href") or ""),
                text=str(link.get("text") or ""),
                mismatch=bool(link.get("mismatch", False)),
            )
            for link in data.get("links") or []
            if isinstance(link, dict)
        ]
        brand = data.get("brandSignals") or {}
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            text=str(data.get("text") or ""),
            forms=forms,
            links=links,
            brand_signals=BrandSignals(
                detected_brands=[str(b) for b in brand.get("detectedBrands") or []],
                brand_domain_mismatch=bool(brand.get("brandDomainMismatch", False)),
            ),
        )

    @property
    def has_password_form(self) -> bool:
        return any(f.has_password_field for f in self.forms)

    @property
    def has_credit_card_form(self) -> bool:
        return any(f.has_credit_card_field for f in self.forms)

    @property
    def mismatched_links(self) -> list[LinkSummary]:
        return [link for link in self.links if link.mismatch]
