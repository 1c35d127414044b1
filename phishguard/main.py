"""Composition root and command-line entry point for PhishGuard."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx

from .analyzer import PageContent, PromptBuilder, SignatureDatabase, ThreatScorer, UrlAnalyzer
from .config import Config, load_config, validate_config
from .model import ModelFetchError, ModelManager, ModelStore
from .monitoring.health import HealthServer
from .pipeline import InferencePipeline, PipelineInput, ScanHandler, ScanRequest
from .sandbox import InferenceSandboxManager, ProcessSandboxHost, SandboxError, SandboxHost

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_signature_database(config: Config) -> SignatureDatabase:
    """Built-in tables extended with the configured lists and pattern rows."""
    signatures = SignatureDatabase()
    for domain in sorted(config.blocklist):
        signatures.add_blocked_domain(domain)
    for domain in sorted(config.allowlist):
        signatures.add_allowlisted_domain(domain)
    signatures.content_patterns.extend(config.content_patterns)
    signatures.url_patterns.extend(config.url_patterns)
    return signatures


class PhishGuardApp:
    """Holds one instance of every collaborator, wired from a Config."""

    def __init__(
        self,
        config: Config,
        sandbox_host: Optional[SandboxHost] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._started_at = datetime.now(timezone.utc)
        self._stop_event: asyncio.Event | None = None

        self.url_analyzer = UrlAnalyzer(
            target_brands=config.target_brands,
            suspicious_tlds=config.suspicious_tlds,
        )
        self.signatures = build_signature_database(config)
        self.scorer = ThreatScorer()
        self.prompt_builder = PromptBuilder(token_budget=config.prompt_token_budget)

        if sandbox_host is None and config.sandbox_command:
            sandbox_host = ProcessSandboxHost(config.sandbox_command)
        self.sandbox = InferenceSandboxManager(sandbox_host) if sandbox_host is not None else None

        self.pipeline = InferencePipeline(
            url_analyzer=self.url_analyzer,
            signatures=self.signatures,
            prompt_builder=self.prompt_builder,
            sandbox=self.sandbox,
            scorer=self.scorer,
        )
        self.scan_handler = ScanHandler(self.url_analyzer, self.signatures, self.scorer)

        self.model_manager = ModelManager(client=http_client, timeout_seconds=config.model_http_timeout)
        self.model_store = ModelStore(config.model_dir)
        self.health_server = HealthServer(
            host=config.health_host,
            port=config.health_port,
            status_provider=self.health_snapshot,
            enabled=config.health_enabled,
        )

    async def health_snapshot(self) -> dict:
        """Provide a lightweight status dict for health endpoints."""
        uptime = (datetime.now(timezone.utc) - self._started_at).total_seconds()
        sandbox_healthy = await self.sandbox.is_healthy() if self.sandbox else False
        return {
            "status": "ok",
            "uptime_seconds": round(uptime, 1),
            "pipeline_status": self.pipeline.status.value,
            "model_status": self.model_manager.status.value,
            "sandbox_status": self.sandbox.status.value if self.sandbox else "UNCONFIGURED",
            "sandbox_healthy": sandbox_healthy,
            "signature_count": self.signatures.signature_count,
        }

    async def sync_model(self) -> bool:
        """Run one model sync against the configured manifest. Returns True when a verified model is stored."""
        if not self.config.model_manifest_url:
            logger.info("MODEL_MANIFEST_URL not set; skipping model sync")
            return False

        def _progress(percent: int) -> None:
            if percent % 25 == 0:
                logger.info("Model download %d%%", percent)

        info = await self.model_manager.sync_model(
            self.config.model_manifest_url,
            self.model_store,
            on_progress=_progress,
        )
        return info is not None

    async def serve(self) -> None:
        """Run the health server until stopped, keeping the model and sandbox warm."""
        self._stop_event = asyncio.Event()
        await self.health_server.start()

        try:
            await self.sync_model()
        except (ModelFetchError, httpx.HTTPError) as exc:
            logger.error("Model sync failed: %s", exc)

        if self.sandbox is not None:
            try:
                await self.sandbox.ensure_context()
            except SandboxError as exc:
                logger.error("Sandbox unavailable: %s", exc)

        logger.info("PhishGuard agent running")
        await self._stop_event.wait()

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def close(self) -> None:
        await self.health_server.stop()
        if self.sandbox is not None:
            await self.sandbox.close_context()
        await self.model_manager.close()


def build_app(
    config: Config,
    sandbox_host: Optional[SandboxHost] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> PhishGuardApp:
    return PhishGuardApp(config, sandbox_host=sandbox_host, http_client=http_client)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2))


def _load_page(path: Optional[Path], url: str) -> PageContent:
    if path is None:
        return PageContent(url=url)
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    page = PageContent.from_dict(data)
    if not page.url:
        page.url = url
    return page


async def _run_scan(app: PhishGuardApp, args: argparse.Namespace) -> int:
    page_text = args.text.read_text(encoding="utf-8") if args.text else None
    verdict = app.scan_handler.handle_scan(ScanRequest(url=args.url, page_text=page_text))
    _print_json(verdict.to_dict())
    return 0


async def _run_analyze(app: PhishGuardApp, args: argparse.Namespace) -> int:
    page = _load_page(args.page, args.url)
    result = await app.pipeline.analyze(PipelineInput(url=args.url, page_content=page))
    _print_json(result.to_dict())
    return 0


async def _run_model_sync(app: PhishGuardApp, args: argparse.Namespace) -> int:
    if not app.config.model_manifest_url:
        logger.error("MODEL_MANIFEST_URL is required for model-sync")
        return 2
    ok = await app.sync_model()
    _print_json({"model_status": app.model_manager.status.value, "verified": ok})
    return 0 if ok else 1


async def _run_serve(app: PhishGuardApp, args: argparse.Namespace) -> int:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop)
    await app.serve()
    return 0


COMMANDS = {
    "scan": _run_scan,
    "analyze": _run_analyze,
    "model-sync": _run_model_sync,
    "serve": _run_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phishguard",
        description="Client-side phishing detection core",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Heuristic-only scan of a URL (no ML)")
    scan.add_argument("url")
    scan.add_argument("--text", type=Path, help="File with page text for content patterns")

    analyze = sub.add_parser("analyze", help="Full pipeline including sandboxed inference")
    analyze.add_argument("url")
    analyze.add_argument("--page", type=Path, help="PageContent JSON from the DOM extractor")

    sub.add_parser("model-sync", help="Fetch, verify and store the model artifact")
    sub.add_parser("serve", help="Run the health server and keep the sandbox warm")
    return parser


async def run(args: argparse.Namespace, config: Config) -> int:
    app = build_app(config)
    try:
        return await COMMANDS[args.command](app, args)
    finally:
        await app.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()
    configure_logging(config.log_level)

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 1

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
