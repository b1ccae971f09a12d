from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx

from journalexport.config import Settings
from journalexport.errors import DegradedResourceError


class BlobStore(Protocol):
    def signed_url(self, ref: str, *, ttl_seconds: int) -> str: ...

    def download(self, ref: str) -> bytes: ...


def _split_ref(ref: str) -> tuple[str, str]:
    token = str(ref or '').strip().strip('/')
    if not token:
        raise DegradedResourceError('empty blob reference')
    bucket, _, path = token.partition('/')
    if not path:
        return '', bucket
    return bucket, path


@dataclass
class LocalBlobConfig:
    root: Path
    public_base_url: str
    signing_secret: str


class LocalBlobStore:
    """Blobs kept under ``data_dir/blobs``; links are HMAC-signed and expire."""

    def __init__(self, cfg: LocalBlobConfig):
        self.cfg = cfg

    def resolve(self, ref: str) -> Path:
        root = self.cfg.root.resolve()
        candidate = (root / str(ref or '').strip().lstrip('/')).resolve()
        if root not in candidate.parents:
            raise DegradedResourceError(f'blob reference escapes storage root: {ref}')
        return candidate

    def _signature(self, ref: str, expires: int) -> str:
        message = f'{ref.strip().strip("/")}:{int(expires)}'.encode('utf-8')
        return hmac.new(self.cfg.signing_secret.encode('utf-8'), message, hashlib.sha256).hexdigest()

    def signed_url(self, ref: str, *, ttl_seconds: int, now: float | None = None) -> str:
        issued = time.time() if now is None else float(now)
        expires = int(issued) + max(1, int(ttl_seconds))
        query = urlencode({'expires': expires, 'signature': self._signature(ref, expires)})
        base = self.cfg.public_base_url.rstrip('/')
        return f'{base}/blobs/{quote(ref.strip().strip("/"))}?{query}'

    def verify(self, ref: str, *, expires: str | int | None, signature: str | None, now: float | None = None) -> bool:
        try:
            expires_at = int(str(expires or '').strip())
        except ValueError:
            return False
        current = time.time() if now is None else float(now)
        if expires_at < current:
            return False
        expected = self._signature(ref, expires_at)
        return hmac.compare_digest(expected, str(signature or ''))

    def download(self, ref: str) -> bytes:
        path = self.resolve(ref)
        if not path.exists() or not path.is_file():
            raise DegradedResourceError(f'blob not found: {ref}')
        try:
            return path.read_bytes()
        except OSError as exc:
            raise DegradedResourceError(f'failed to read blob {ref}: {exc}') from exc

    def put(self, ref: str, data: bytes) -> Path:
        path = self.resolve(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path


@dataclass
class HttpBlobConfig:
    base_url: str
    api_key: str | None
    timeout_seconds: int


class HttpBlobStore:
    """Storage gateway speaking the ``/object`` and ``/object/sign`` REST routes."""

    def __init__(self, cfg: HttpBlobConfig, *, transport: httpx.BaseTransport | None = None):
        self.cfg = cfg
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.cfg.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        api_key = str(self.cfg.api_key or '').strip()
        if api_key:
            headers['Authorization'] = f'Bearer {api_key}'
            headers['apikey'] = api_key
        return headers

    def _build_url(self, endpoint: str) -> str:
        return f"{self.cfg.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=max(5, int(self.cfg.timeout_seconds)), transport=self._transport)

    def signed_url(self, ref: str, *, ttl_seconds: int) -> str:
        if not self.configured:
            raise DegradedResourceError('blob gateway is not configured')
        bucket, path = _split_ref(ref)
        url = self._build_url(f'object/sign/{bucket}/{path}' if bucket else f'object/sign/{path}')
        try:
            with self._client() as client:
                response = client.post(url, headers=self._headers(), json={'expiresIn': int(ttl_seconds)})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise DegradedResourceError(f'failed to sign blob {ref}: {exc}') from exc

        signed = ''
        if isinstance(payload, dict):
            signed = str(payload.get('signedURL') or payload.get('signedUrl') or payload.get('url') or '').strip()
        if not signed:
            raise DegradedResourceError(f'blob gateway returned no signed URL for {ref}')
        if signed.startswith('http://') or signed.startswith('https://'):
            return signed
        return self._build_url(signed)

    def download(self, ref: str) -> bytes:
        if not self.configured:
            raise DegradedResourceError('blob gateway is not configured')
        bucket, path = _split_ref(ref)
        url = self._build_url(f'object/{bucket}/{path}' if bucket else f'object/{path}')
        try:
            with self._client() as client:
                response = client.get(url, headers=self._headers())
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DegradedResourceError(f'failed to download blob {ref}: {exc}') from exc
        if not response.content:
            raise DegradedResourceError(f'blob {ref} is empty')
        return response.content


def build_blob_store(settings: Settings) -> LocalBlobStore | HttpBlobStore:
    backend = str(settings.blob_backend or 'local').strip().lower()
    if backend == 'http':
        return HttpBlobStore(
            HttpBlobConfig(
                base_url=str(settings.blob_base_url or ''),
                api_key=settings.blob_api_key,
                timeout_seconds=settings.blob_timeout_seconds,
            )
        )
    if backend != 'local':
        raise ValueError(f'unsupported blob backend: {settings.blob_backend}')
    return LocalBlobStore(
        LocalBlobConfig(
            root=settings.data_dir / 'blobs',
            public_base_url=settings.public_base_url,
            signing_secret=settings.blob_signing_secret,
        )
    )


def fetch_logo(settings: Settings) -> bytes | None:
    """Optional header logo from a configured path or URL; ``None`` when unavailable."""
    if settings.brand_logo_path is not None:
        path = Path(settings.brand_logo_path)
        if path.exists() and path.is_file():
            return path.read_bytes()
        raise DegradedResourceError(f'logo not found: {path}')
    url = str(settings.brand_logo_url or '').strip()
    if not url:
        return None
    try:
        with httpx.Client(timeout=max(2, int(settings.brand_logo_timeout_seconds))) as client:
            response = client.get(url)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise DegradedResourceError(f'failed to fetch logo {url}: {exc}') from exc
    return response.content or None
