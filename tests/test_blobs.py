"""Tests for the local and HTTP blob stores."""

from __future__ import annotations

import json

import httpx
import pytest

from journalexport.adapters.blobs import (
    HttpBlobConfig,
    HttpBlobStore,
    LocalBlobStore,
    build_blob_store,
    fetch_logo,
)
from journalexport.config import Settings
from journalexport.errors import DegradedResourceError

from tests.conftest import make_png

REF = "evidence/user-owner/recording.m4a"
NOW = 1_800_000_000.0


class TestLocalBlobStore:
    def test_signed_url_shape(self, local_blobs: LocalBlobStore) -> None:
        url = local_blobs.signed_url(REF, ttl_seconds=60, now=NOW)

        assert url.startswith(f"http://testserver/blobs/{REF}?expires={int(NOW) + 60}&signature=")

    def test_verify_round_trip(self, local_blobs: LocalBlobStore) -> None:
        url = local_blobs.signed_url(REF, ttl_seconds=60, now=NOW)
        params = dict(item.split("=", 1) for item in url.split("?", 1)[1].split("&"))

        assert local_blobs.verify(REF, expires=params["expires"], signature=params["signature"], now=NOW + 30)
        assert not local_blobs.verify(REF, expires=params["expires"], signature=params["signature"], now=NOW + 61)
        assert not local_blobs.verify("evidence/other.m4a", expires=params["expires"], signature=params["signature"], now=NOW)

    @pytest.mark.parametrize("expires", [None, "", "soon"])
    def test_verify_rejects_bad_expiry(self, local_blobs: LocalBlobStore, expires) -> None:
        assert not local_blobs.verify(REF, expires=expires, signature="abc", now=NOW)

    def test_put_and_download(self, local_blobs: LocalBlobStore) -> None:
        local_blobs.put(REF, b"audio")

        assert local_blobs.download(REF) == b"audio"

    def test_missing_blob(self, local_blobs: LocalBlobStore) -> None:
        with pytest.raises(DegradedResourceError):
            local_blobs.download("evidence/missing.png")

    def test_path_traversal_rejected(self, local_blobs: LocalBlobStore) -> None:
        with pytest.raises(DegradedResourceError):
            local_blobs.resolve("../entries/entry-001.json")


class TestHttpBlobStore:
    def _store(self, handler) -> HttpBlobStore:
        return HttpBlobStore(
            HttpBlobConfig(base_url="https://gateway.example/storage/v1", api_key="service-key", timeout_seconds=10),
            transport=httpx.MockTransport(handler),
        )

    def test_signed_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"signedURL": "/object/sign/evidence/user-owner/recording.m4a?token=t"})

        url = self._store(handler).signed_url(REF, ttl_seconds=3600)

        assert url == "https://gateway.example/storage/v1/object/sign/evidence/user-owner/recording.m4a?token=t"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/storage/v1/object/sign/evidence/user-owner/recording.m4a"
        assert seen[0].headers["Authorization"] == "Bearer service-key"
        assert json.loads(seen[0].content) == {"expiresIn": 3600}

    def test_absolute_signed_url_passed_through(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"signedUrl": "https://cdn.example/a.m4a?token=t"})

        assert self._store(handler).signed_url(REF, ttl_seconds=60) == "https://cdn.example/a.m4a?token=t"

    def test_signing_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "down"})

        with pytest.raises(DegradedResourceError):
            self._store(handler).signed_url(REF, ttl_seconds=60)

    def test_empty_signing_payload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        with pytest.raises(DegradedResourceError):
            self._store(handler).signed_url(REF, ttl_seconds=60)

    def test_download(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/storage/v1/object/evidence/user-owner/photo.png"
            return httpx.Response(200, content=b"png-bytes")

        assert self._store(handler).download("evidence/user-owner/photo.png") == b"png-bytes"

    def test_download_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(DegradedResourceError):
            self._store(handler).download("evidence/user-owner/photo.png")

    def test_malformed_base_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("request should not be sent")

        store = HttpBlobStore(
            HttpBlobConfig(base_url="https://gateway.example:port/storage/v1", api_key=None, timeout_seconds=10),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(DegradedResourceError):
            store.signed_url(REF, ttl_seconds=60)
        with pytest.raises(DegradedResourceError):
            store.download(REF)

    def test_unconfigured(self) -> None:
        store = HttpBlobStore(HttpBlobConfig(base_url="", api_key=None, timeout_seconds=10))

        with pytest.raises(DegradedResourceError):
            store.download(REF)


class TestFactories:
    def test_backend_selection(self, settings: Settings) -> None:
        assert isinstance(build_blob_store(settings), LocalBlobStore)
        http_settings = settings.model_copy(update={"blob_backend": "http", "blob_base_url": "https://g.example"})
        assert isinstance(build_blob_store(http_settings), HttpBlobStore)

    def test_unknown_backend(self, settings: Settings) -> None:
        with pytest.raises(ValueError):
            build_blob_store(settings.model_copy(update={"blob_backend": "ftp"}))

    def test_logo_from_path(self, settings: Settings, tmp_path) -> None:
        logo = tmp_path / "logo.png"
        logo.write_bytes(make_png(32, 32))

        assert fetch_logo(settings.model_copy(update={"brand_logo_path": logo})) == logo.read_bytes()

    def test_logo_missing_path(self, settings: Settings, tmp_path) -> None:
        with pytest.raises(DegradedResourceError):
            fetch_logo(settings.model_copy(update={"brand_logo_path": tmp_path / "nope.png"}))

    def test_logo_malformed_url(self, settings: Settings) -> None:
        with pytest.raises(DegradedResourceError):
            fetch_logo(settings.model_copy(update={"brand_logo_url": "https://logo.example:port/logo.png"}))

    def test_no_logo_configured(self, settings: Settings) -> None:
        assert fetch_logo(settings) is None
