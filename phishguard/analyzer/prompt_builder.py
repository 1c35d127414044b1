"""Build classification prompts from page features and URL analysis."""

from __future__ import annotations

from dataclasses import dataclass

from .page import FormSummary, PageContent
from .url_analyzer import UrlAnalysisResult

# Conservative chars-per-token estimate for English text
CHARS_PER_TOKEN = 4
DEFAULT_TOKEN_BUDGET = 1500
TEXT_EXCERPT_LENGTH = 500
TRUNCATION_MARKER = "\n\n[TRUNCATED]"

SYSTEM_PROMPT = """You are a phishing detection classifier. Analyze the provided web page features and determine whether the page is a phishing attempt.

Your classification must be one of:
- SAFE: Legitimate page with no suspicious indicators
- SUSPICIOUS: Some concerning signals but not conclusive
- LIKELY_PHISHING: Multiple strong indicators of phishing
- CONFIRMED_PHISHING: Clear phishing attempt with high confidence

Respond with a JSON object containing:
- "classification": one of the above labels
- "confidence": a number between 0 and 1
- "reasoning": a brief explanation of your decision

Focus on these key phishing indicators:
1. Brand impersonation (title/content claims to be a known brand but domain doesn't match)
2. Credential harvesting (login forms submitting to suspicious domains)
3. URL manipulation (homoglyphs, typosquatting, suspicious TLDs)
4. Urgency tactics (threats of account closure, time pressure)
5. Link deception (displayed URLs differ from actual destinations)"""


@dataclass(frozen=True)
class PromptPair:
    system: str
    user: str


class PromptBuilder:
    """Formats page features into a system/user prompt pair under a token budget."""

    def __init__(self, token_budget: int = DEFAULT_TOKEN_BUDGET):
        self.token_budget = token_budget

    def build_prompt(self, page: PageContent, url_analysis: UrlAnalysisResult) -> PromptPair:
        raw_user = f"{format_page_features(page)}\n\n{format_url_signals(url_analysis)}"
        return PromptPair(
            system=SYSTEM_PROMPT,
            user=truncate_to_token_budget(raw_user, self.token_budget),
        )


def format_page_features(page: PageContent) -> str:
    sections = [
        "## Page Analysis",
        f"- URL: {page.url}",
        f"- Title: {page.title}",
    ]

    if page.text:
        excerpt = page.text
        if len(excerpt) > TEXT_EXCERPT_LENGTH:
            excerpt = excerpt[:TEXT_EXCERPT_LENGTH] + "..."
        sections.append(f"\n### Page Content\n{excerpt}")

    if page.forms:
        sections.append(f"\n### Forms Found: {len(page.forms)}")
        sections.extend(_format_form(form) for form in page.forms)

    mismatched = page.mismatched_links
    if mismatched:
        sections.append("\n### Suspicious Links (href/text mismatch)")
        for link in mismatched:
            sections.append(f'- Displays: "{link.text}" -> Actually: {link.href}')

    brands = page.brand_signals
    if brands.detected_brands:
        sections.append(f"\n### Brand Signals\n- Detected brands: {', '.join(brands.detected_brands)}")
        if brands.brand_domain_mismatch:
            sections.append("- [!] Brand/domain mismatch: page references brand but domain does not match")

    return "\n".join(sections)


def format_url_signals(analysis: UrlAnalysisResult) -> str:
    signals = ", ".join(analysis.signals) if analysis.signals else "none"
    return "\n".join(
        [
            "## URL Analysis",
            f"- Risk Level: {analysis.risk_level.value}",
            f"- Risk Score: {analysis.score}",
            f"- Triggered Signals: {signals}",
        ]
    )


def truncate_to_token_budget(text: str, max_tokens: int) -> str:
    """Cut text to roughly `max_tokens`, ending with a [TRUNCATED] marker."""
    max_chars = max(0, max_tokens) * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    if max_chars <= len(TRUNCATION_MARKER):
        return TRUNCATION_MARKER[-max_chars:] if max_chars else ""
    return text[: max_chars - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def _format_form(form: FormSummary) -> str:
    parts = [
        f"- Action: {form.action or '(none)'}",
        f"  Method: {form.method}",
        f"  Inputs: {form.input_count}",
    ]
    if form.has_password_field:
        parts.append("  [!] Contains password field")
    if form.has_credit_card_field:
        parts.append("  [!] Contains credit card field")
    return "\n".join(parts)
