"""ML model artifact lifecycle: manifest, download, integrity, versioning."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Union

import httpx

if TYPE_CHECKING:
    from .store import ModelStore

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "PhishGuard/1.0 (model-sync)"

ProgressCallback = Callable[[int], None]


class ModelFetchError(Exception):
    """Manifest or model artifact could not be fetched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ModelStatus(str, Enum):
    NOT_DOWNLOADED = "NOT_DOWNLOADED"
    DOWNLOADING = "DOWNLOADING"
    VERIFYING = "VERIFYING"
    READY = "READY"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ModelManifest:
    """Remote description of the current model release."""

    version: str
    model_url: str
    hash: str  # lowercase hex SHA-256
    size_bytes: int

    @classmethod
    def from_dict(cls, data: object) -> "ModelManifest":
        if not isinstance(data, dict):
            raise ModelFetchError("Model manifest is not a JSON object")
        version = data.get("version")
        model_url = data.get("modelUrl")
        digest = data.get("hash")
        size_bytes = data.get("sizeBytes")
        if not isinstance(version, str) or not version:
            raise ModelFetchError("Model manifest is missing 'version'")
        if not isinstance(model_url, str) or not model_url:
            raise ModelFetchError("Model manifest is missing 'modelUrl'")
        if not isinstance(digest, str) or not digest:
            raise ModelFetchError("Model manifest is missing 'hash'")
        if isinstance(size_bytes, bool) or not isinstance(size_bytes, int) or size_bytes < 0:
            raise ModelFetchError("Model manifest has an invalid 'sizeBytes'")
        return cls(version=version, model_url=model_url, hash=digest, size_bytes=size_bytes)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "modelUrl": self.model_url,
            "hash": self.hash,
            "sizeBytes": self.size_bytes,
        }


@dataclass(frozen=True)
class ModelInfo:
    """Metadata of the locally stored, verified model."""

    version: str
    hash: str
    size_bytes: int

    def to_dict(self) -> dict:
        return {"version": self.version, "hash": self.hash, "sizeBytes": self.size_bytes}

    @classmethod
    def from_dict(cls, data: dict) -> "ModelInfo":
        return cls(
            version=str(data["version"]),
            hash=str(data["hash"]),
            size_bytes=int(data["sizeBytes"]),
        )


def sha256_hex(data: Union[bytes, bytearray, memoryview]) -> str:
    return hashlib.sha256(data).hexdigest()


class ModelManager:
    """Downloads and verifies the model artifact. One download at a time."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 60.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.status = ModelStatus.NOT_DOWNLOADED
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if this manager created it)."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_manifest(self, url: str) -> ModelManifest:
        client = await self._get_client()
        response = await client.get(url)
        if not response.is_success:
            raise ModelFetchError(
                f"Failed to fetch model manifest: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ModelFetchError(f"Model manifest is not valid JSON: {exc}") from exc
        return ModelManifest.from_dict(payload)

    @staticmethod
    def is_update_available(local: ModelInfo, remote: ModelManifest) -> bool:
        return local.version != remote.version or local.hash != remote.hash

    async def download_model(self, url: str, on_progress: Optional[ProgressCallback] = None) -> bytes:
        """Stream the model artifact, reporting 0-100 progress when the size is known."""
        self.status = ModelStatus.DOWNLOADING
        client = await self._get_client()
        chunks: list[bytes] = []
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise ModelFetchError(
                        f"Failed to download model: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                try:
                    total = int(response.headers.get("content-length") or 0)
                except ValueError:
                    total = 0

                received = 0
                async for chunk in response.aiter_bytes():
                    if not chunk:
                        continue
                    chunks.append(chunk)
                    received += len(chunk)
                    if total > 0 and on_progress is not None:
                        on_progress(min(100, int(received * 100 / total + 0.5)))
        except (httpx.HTTPError, ModelFetchError):
            self.status = ModelStatus.ERROR
            raise

        data = b"".join(chunks)
        logger.info("Downloaded model artifact (%d bytes)", len(data))
        return data

    def verify_integrity(self, data: Union[bytes, bytearray, memoryview], expected_hash: str) -> bool:
        """Compare the SHA-256 of `data` with `expected_hash` (case-sensitive)."""
        self.status = ModelStatus.VERIFYING
        matched = sha256_hex(data) == expected_hash
        self.status = ModelStatus.READY if matched else ModelStatus.ERROR
        if not matched:
            logger.warning("Model integrity check failed (expected %s)", expected_hash)
        return matched

    async def sync_model(
        self,
        manifest_url: str,
        store: "ModelStore",
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[ModelInfo]:
        """Bring the stored model in line with the remote manifest.

        Returns the info of the verified model now on disk, or None when the
        download failed verification (the previous artifact is left in place).
        """
        manifest = await self.fetch_manifest(manifest_url)
        local = await store.load_info()

        if local is not None and not self.is_update_available(local, manifest):
            stored = await store.load_model()
            if stored is not None and self.verify_integrity(stored, local.hash):
                logger.info("Model %s is up to date", local.version)
                return local
            logger.warning("Stored model %s failed verification; downloading again", local.version)

        logger.info("Downloading model %s", manifest.version)
        data = await self.download_model(manifest.model_url, on_progress)
        if not self.verify_integrity(data, manifest.hash):
            return None

        info = ModelInfo(version=manifest.version, hash=manifest.hash, size_bytes=len(data))
        await store.save(data, info)
        logger.info("Model %s installed (%d bytes)", info.version, info.size_bytes)
        return info
