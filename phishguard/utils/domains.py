"""Hostname normalization utilities."""

from __future__ import annotations

from urllib.parse import urlsplit

import tldextract

# Bundled public suffix snapshot only; the core never fetches the live list.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def extract_hostname(value: str) -> str:
    """
    Return the lowercase hostname of a URL (or the input itself if it has none).

    - Ignores scheme, credentials, port, path, query and fragment
    - Strips a trailing dot
    """
    raw = (value or "").strip()
    if not raw:
        return ""

    try:
        host = urlsplit(raw).hostname
    except ValueError:
        host = None
    if not host:
        return raw.lower()
    return host.strip(".")


def normalize_domain(value: str) -> str:
    """Normalize a list entry (domain or URL) to a bare lowercase host."""
    raw = (value or "").strip().lower()
    if not raw:
        return ""
    if "://" in raw:
        raw = extract_hostname(raw)
    raw = raw.split("/")[0]
    host, sep, port = raw.rpartition(":")
    if sep and port.isdigit() and ":" not in host:
        raw = host
    return raw.strip(".")


def split_domain(host: str) -> tuple[str, str, str]:
    """Split a host into (subdomain, domain label, public suffix)."""
    extracted = _extract(host or "")
    return extracted.subdomain, extracted.domain, extracted.suffix


def registered_domain(host: str) -> str:
    """Return the registrable domain for a host (best-effort)."""
    _, domain, suffix = split_domain(host)
    if domain and suffix:
        return f"{domain}.{suffix}".lower()
    return (host or "").lower()


def matches_domain_suffix(host: str, domains: set[str]) -> str | None:
    """Return the entry of `domains` that equals `host` or is a parent of it."""
    if not host:
        return None
    if host in domains:
        return host
    for candidate in domains:
        if host.endswith(f".{candidate}"):
            return candidate
    return None
