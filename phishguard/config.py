"""Configuration management for PhishGuard."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import yaml
from dotenv import load_dotenv

from .analyzer.prompt_builder import DEFAULT_TOKEN_BUDGET
from .analyzer.signatures import SignaturePattern, load_signature_overrides
from .utils.domains import normalize_domain

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))
    model_dir: Optional[Path] = None

    # Model artifact sync (empty manifest URL disables sync)
    model_manifest_url: str = ""
    model_http_timeout: int = 60

    # Sandbox child process; empty means inference is unavailable (degraded verdicts)
    sandbox_command: str = ""
    prompt_token_budget: int = DEFAULT_TOKEN_BUDGET

    # Health server
    health_host: str = "127.0.0.1"
    health_port: int = 8081
    health_enabled: bool = True

    log_level: str = "INFO"

    # Loaded lists (extend the built-in signature tables)
    allowlist: Set[str] = field(default_factory=set)
    blocklist: Set[str] = field(default_factory=set)
    content_patterns: list[SignaturePattern] = field(default_factory=list)
    url_patterns: list[SignaturePattern] = field(default_factory=list)

    # URL analyzer overrides (config/heuristics.yaml); None keeps built-in tables
    target_brands: Optional[list[str]] = None
    suspicious_tlds: Optional[dict[str, int]] = None

    def __post_init__(self):
        """Ensure paths exist and load lists."""
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)
        self.model_dir = Path(self.model_dir) if self.model_dir else self.data_dir / "model"

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._load_lists()

    def _load_lists(self):
        """Load allowlist and blocklist from config files."""
        allowlist_path = self.config_dir / "allowlist.txt"
        blocklist_path = self.config_dir / "blocklist.txt"

        if allowlist_path.exists():
            self.allowlist |= {normalize_domain(item) for item in self._load_list_file(allowlist_path)}
        if blocklist_path.exists():
            self.blocklist |= {normalize_domain(item) for item in self._load_list_file(blocklist_path)}
        self.allowlist.discard("")
        self.blocklist.discard("")

    @staticmethod
    def _load_list_file(path: Path) -> Set[str]:
        """Load a list file, ignoring comments and empty lines."""
        items = set()
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    items.add(line.lower())
        return items


def _load_heuristics(config_dir: Path) -> dict:
    """Load URL analyzer overrides from config/heuristics.yaml (optional).

    Expected shape:

        url:
          target_brands: [google.com, paypal.com]
          suspicious_tlds:
            tk: 25
            zip: 20
    """
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}

    url_cfg = data.get("url", {}) if isinstance(data, dict) else {}
    if not isinstance(url_cfg, dict):
        return {}

    brands = url_cfg.get("target_brands")
    target_brands = None
    if isinstance(brands, list):
        target_brands = [normalize_domain(str(b)) for b in brands if str(b).strip()] or None

    tlds = url_cfg.get("suspicious_tlds")
    suspicious_tlds = None
    if isinstance(tlds, dict):
        suspicious_tlds = {}
        for tld, points in tlds.items():
            try:
                suspicious_tlds[str(tld).strip().lstrip(".").lower()] = int(points)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric score for TLD %r", tld)
        suspicious_tlds = suspicious_tlds or None

    return {"target_brands": target_brands, "suspicious_tlds": suspicious_tlds}


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    data_dir = Path(os.getenv("DATA_DIR", "./data"))
    model_dir_env = os.getenv("MODEL_DIR", "").strip()

    heuristics = _load_heuristics(config_dir)
    signature_rows = load_signature_overrides(config_dir)

    return Config(
        data_dir=data_dir,
        config_dir=config_dir,
        model_dir=Path(model_dir_env) if model_dir_env else data_dir / "model",
        model_manifest_url=os.getenv("MODEL_MANIFEST_URL", "").strip(),
        model_http_timeout=int(os.getenv("MODEL_HTTP_TIMEOUT", "60")),
        sandbox_command=os.getenv("SANDBOX_COMMAND", "").strip(),
        prompt_token_budget=int(os.getenv("PROMPT_TOKEN_BUDGET", str(DEFAULT_TOKEN_BUDGET))),
        health_host=os.getenv("HEALTH_HOST", "127.0.0.1"),
        health_port=int(os.getenv("HEALTH_PORT", "8081")),
        health_enabled=os.getenv("HEALTH_ENABLED", "true").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        content_patterns=signature_rows.get("content_patterns", []),
        url_patterns=signature_rows.get("url_patterns", []),
        target_brands=heuristics.get("target_brands"),
        suspicious_tlds=heuristics.get("suspicious_tlds"),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.prompt_token_budget <= 0:
        errors.append("PROMPT_TOKEN_BUDGET must be positive")
    if config.model_http_timeout <= 0:
        errors.append("MODEL_HTTP_TIMEOUT must be positive")
    if not 0 < config.health_port < 65536:
        errors.append("HEALTH_PORT must be between 1 and 65535")
    if config.log_level not in VALID_LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of {', '.join(sorted(VALID_LOG_LEVELS))}")
    if config.model_manifest_url and not config.model_manifest_url.startswith(("https://", "http://")):
        errors.append("MODEL_MANIFEST_URL must be an http(s) URL")

    if not config.sandbox_command:
        # The pipeline still runs, but every verdict is scored without ML.
        logger.info("No SANDBOX_COMMAND configured; ML inference will be unavailable")
    if config.allowlist & config.blocklist:
        logger.warning(
            "Domains on both allowlist and blocklist (allowlist wins): %s",
            ", ".join(sorted(config.allowlist & config.blocklist)),
        )

    return errors
