"""Tests for model artifact lifecycle."""

import hashlib

import httpx
import pytest

from phishguard.model import (
    ModelFetchError,
    ModelInfo,
    ModelManager,
    ModelManifest,
    ModelStatus,
    ModelStore,
)

MODEL_BYTES = b"\x00onnx-model-weights\xff" * 64
MODEL_HASH = hashlib.sha256(MODEL_BYTES).hexdigest()
MANIFEST_URL = "https://models.example/manifest.json"
MODEL_URL = "https://models.example/v2/model.bin"


def _manifest(version="2.0.0", digest=MODEL_HASH, size=len(MODEL_BYTES)) -> dict:
    return {"version": version, "modelUrl": MODEL_URL, "hash": digest, "sizeBytes": size}


class _Server:
    """MockTransport handler serving a manifest and a model artifact."""

    def __init__(self, manifest: dict | None = None, model: bytes = MODEL_BYTES):
        self.manifest = manifest if manifest is not None else _manifest()
        self.model = model
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        if str(request.url) == MANIFEST_URL:
            return httpx.Response(200, json=self.manifest)
        if str(request.url) == MODEL_URL:
            return httpx.Response(200, content=self.model)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.mark.asyncio
async def test_fetch_manifest():
    server = _Server()
    manager = ModelManager(client=server.client())
    manifest = await manager.fetch_manifest(MANIFEST_URL)
    assert manifest == ModelManifest("2.0.0", MODEL_URL, MODEL_HASH, len(MODEL_BYTES))
    assert manifest.to_dict() == _manifest()


@pytest.mark.asyncio
async def test_fetch_manifest_http_error():
    manager = ModelManager(client=_Server().client())
    with pytest.raises(ModelFetchError) as excinfo:
        await manager.fetch_manifest("https://models.example/missing.json")
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_fetch_manifest_rejects_incomplete_payload():
    manifest = _manifest()
    del manifest["hash"]
    manager = ModelManager(client=_Server(manifest=manifest).client())
    with pytest.raises(ModelFetchError, match="hash"):
        await manager.fetch_manifest(MANIFEST_URL)


def test_is_update_available():
    local = ModelInfo(version="1.0.0", hash="aa", size_bytes=1)
    assert not ModelManager.is_update_available(local, ModelManifest("1.0.0", MODEL_URL, "aa", 1))
    assert ModelManager.is_update_available(local, ModelManifest("1.0.1", MODEL_URL, "aa", 1))
    assert ModelManager.is_update_available(local, ModelManifest("1.0.0", MODEL_URL, "bb", 1))
    assert ModelManager.is_update_available(local, ModelManifest("2.0.0", MODEL_URL, "bb", 1))


@pytest.mark.asyncio
async def test_download_reports_progress_from_content_length():
    async def body():
        yield b"ab"
        yield b"cd"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Length": "4"}, content=body())

    manager = ModelManager(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    progress: list[int] = []
    data = await manager.download_model(MODEL_URL, progress.append)
    assert data == b"abcd"
    assert progress == [50, 100]
    assert manager.status == ModelStatus.DOWNLOADING


@pytest.mark.asyncio
async def test_download_without_content_length_skips_progress():
    async def body():
        yield b"chunk-1"
        yield b"chunk-2"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    manager = ModelManager(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    progress: list[int] = []
    assert await manager.download_model(MODEL_URL, progress.append) == b"chunk-1chunk-2"
    assert progress == []


@pytest.mark.asyncio
async def test_download_http_error_sets_error_status():
    manager = ModelManager(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))))
    with pytest.raises(ModelFetchError, match="HTTP 500"):
        await manager.download_model(MODEL_URL)
    assert manager.status == ModelStatus.ERROR


@pytest.mark.asyncio
async def test_download_transport_error_sets_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    manager = ModelManager(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(httpx.ConnectError):
        await manager.download_model(MODEL_URL)
    assert manager.status == ModelStatus.ERROR


class TestVerifyIntegrity:
    def test_matching_hash(self):
        manager = ModelManager()
        assert manager.verify_integrity(MODEL_BYTES, MODEL_HASH)
        assert manager.status == ModelStatus.READY

    def test_deterministic(self):
        manager = ModelManager()
        assert manager.verify_integrity(MODEL_BYTES, MODEL_HASH)
        assert manager.verify_integrity(bytearray(MODEL_BYTES), MODEL_HASH)

    def test_single_byte_mutation_fails(self):
        manager = ModelManager()
        mutated = bytearray(MODEL_BYTES)
        mutated[10] ^= 0x01
        assert not manager.verify_integrity(bytes(mutated), MODEL_HASH)
        assert manager.status == ModelStatus.ERROR

    def test_hash_compare_is_case_sensitive(self):
        manager = ModelManager()
        assert not manager.verify_integrity(MODEL_BYTES, MODEL_HASH.upper())


@pytest.mark.asyncio
async def test_sync_model_downloads_and_stores(tmp_path):
    server = _Server()
    store = ModelStore(tmp_path / "model")
    manager = ModelManager(client=server.client())

    info = await manager.sync_model(MANIFEST_URL, store)

    assert info == ModelInfo("2.0.0", MODEL_HASH, len(MODEL_BYTES))
    assert manager.status == ModelStatus.READY
    assert await store.load_model() == MODEL_BYTES
    assert await store.load_info() == info


@pytest.mark.asyncio
async def test_sync_model_skips_download_when_current(tmp_path):
    server = _Server()
    store = ModelStore(tmp_path / "model")
    await store.save(MODEL_BYTES, ModelInfo("2.0.0", MODEL_HASH, len(MODEL_BYTES)))
    manager = ModelManager(client=server.client())

    info = await manager.sync_model(MANIFEST_URL, store)

    assert info.version == "2.0.0"
    assert server.requests == [MANIFEST_URL]
    assert manager.status == ModelStatus.READY


@pytest.mark.asyncio
async def test_sync_model_keeps_previous_artifact_on_bad_hash(tmp_path):
    old_bytes = b"previous model"
    old_info = ModelInfo("1.0.0", hashlib.sha256(old_bytes).hexdigest(), len(old_bytes))
    store = ModelStore(tmp_path / "model")
    await store.save(old_bytes, old_info)

    server = _Server(manifest=_manifest(digest="0" * 64))
    manager = ModelManager(client=server.client())

    assert await manager.sync_model(MANIFEST_URL, store) is None
    assert manager.status == ModelStatus.ERROR
    assert await store.load_model() == old_bytes
    assert await store.load_info() == old_info


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    client = _Server().client()
    manager = ModelManager(client=client)
    await manager.close()
    assert not client.is_closed
    await client.aclose()
