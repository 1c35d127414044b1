"""Local persistence for the verified model artifact."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from .manager import ModelInfo

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.bin"
INFO_FILENAME = "model_info.json"


class ModelStore:
    """Stores `model.bin` and its `model_info.json` under one directory."""

    def __init__(self, model_dir: Path):
        self.model_dir = Path(model_dir)
        self.model_dir.mkdir(parents=True, exist_ok=True)

    @property
    def model_path(self) -> Path:
        return self.model_dir / MODEL_FILENAME

    @property
    def info_path(self) -> Path:
        return self.model_dir / INFO_FILENAME

    async def load_info(self) -> Optional[ModelInfo]:
        """Return stored model metadata, or None if missing or unreadable."""
        if not self.info_path.exists():
            return None
        try:
            raw = await asyncio.to_thread(self.info_path.read_text, encoding="utf-8")
            return ModelInfo.from_dict(json.loads(raw))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable %s: %s", self.info_path, exc)
            return None

    async def load_model(self) -> Optional[bytes]:
        if not self.model_path.exists():
            return None
        return await asyncio.to_thread(self.model_path.read_bytes)

    async def save(self, data: bytes, info: ModelInfo) -> Path:
        """Write the artifact, then its metadata. Each file is replaced atomically."""
        await asyncio.to_thread(_write_atomic, self.model_path, bytes(data))
        payload = json.dumps(info.to_dict(), indent=2).encode("utf-8")
        await asyncio.to_thread(_write_atomic, self.info_path, payload)
        return self.model_path


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)
