from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

import httpx
from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool

from vaultshare.core.config import settings
from vaultshare.core.errors import SignerUnavailable
from vaultshare.services.content_types import CONTENT_CLASS_VIDEO

logger = logging.getLogger("vaultshare.signer")

# presigned GET URLs cannot outlive seven days
MAX_PRESIGN_SECONDS = 7 * 24 * 60 * 60
SIGNER_KEY_HEADER = "X-Signer-Key"


@dataclass(frozen=True)
class UrlRequest:
    storage_path: str
    content_class: str
    ttl_hint: int

    @property
    def is_video(self) -> bool:
        return self.content_class == CONTENT_CLASS_VIDEO


@dataclass(frozen=True)
class SignedUrl:
    storage_path: str
    url: str
    expires_in: int
    is_video: bool = False


class SignedUrlSigner(Protocol):
    async def sign_batch(self, requests: list[UrlRequest]) -> list[SignedUrl]:
        ...

    async def sign_one(self, request: UrlRequest) -> SignedUrl:
        ...


class MinioSigner:
    def __init__(self, client: Minio, bucket: str | None = None):
        self.client = client
        self.bucket = bucket or settings.MINIO_BUCKET

    def _presign(self, request: UrlRequest) -> SignedUrl:
        expires_in = max(1, min(int(request.ttl_hint), MAX_PRESIGN_SECONDS))
        url = self.client.presigned_get_object(
            self.bucket,
            request.storage_path.lstrip("/"),
            expires=timedelta(seconds=expires_in),
        )
        return SignedUrl(
            storage_path=request.storage_path,
            url=url,
            expires_in=expires_in,
            is_video=request.is_video,
        )

    async def sign_one(self, request: UrlRequest) -> SignedUrl:
        try:
            return await run_in_threadpool(self._presign, request)
        except (S3Error, ValueError) as e:
            raise SignerUnavailable(f"presign failed for {request.storage_path}: {e}") from e

    async def sign_batch(self, requests: list[UrlRequest]) -> list[SignedUrl]:
        signed = []
        last_error = None
        for request in requests:
            try:
                signed.append(await run_in_threadpool(self._presign, request))
            except (S3Error, ValueError) as e:
                # omitted items are reported as failures by the caller
                last_error = e
                logger.warning("presign failed in batch path=%s err=%s", request.storage_path, e)
        if requests and not signed:
            # every item failed, report the whole exchange as failed
            raise SignerUnavailable(f"presign failed for all {len(requests)} items: {last_error}")
        return signed


class HttpSigner:
    """Client for a remote signing service speaking the signed-urls wire format."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
    ):
        self.base_url = (base_url or settings.SIGNER_BASE_URL).rstrip("/")
        self.timeout = settings.SIGNER_TIMEOUT_SECONDS if timeout is None else timeout
        self.api_key = settings.SIGNER_API_KEY if api_key is None else api_key
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            response = await self._get_client().post(path, json=payload, headers={SIGNER_KEY_HEADER: self.api_key})
        except httpx.HTTPError as e:
            raise SignerUnavailable(f"signer transport error on {path}: {e}") from e
        if response.status_code >= 400:
            raise SignerUnavailable(f"signer returned {response.status_code} on {path}")
        try:
            body = response.json()
        except ValueError as e:
            raise SignerUnavailable(f"signer returned invalid JSON on {path}") from e
        if not isinstance(body, dict):
            raise SignerUnavailable(f"signer returned unexpected body on {path}")
        if body.get("error"):
            raise SignerUnavailable(f"signer error on {path}: {body['error']}")
        return body

    async def sign_batch(self, requests: list[UrlRequest]) -> list[SignedUrl]:
        body = await self._post(
            "/signed-urls/batch",
            {
                "requests": [
                    {"storagePath": r.storage_path, "isVideo": r.is_video, "expiresIn": r.ttl_hint}
                    for r in requests
                ]
            },
        )
        items = body.get("signedUrls")
        if not isinstance(items, list):
            raise SignerUnavailable("signer batch response has no signedUrls list")

        signed = []
        for item in items:
            try:
                signed.append(
                    SignedUrl(
                        storage_path=item["storagePath"],
                        url=item["signedUrl"],
                        expires_in=int(item["expiresIn"]),
                        is_video=bool(item.get("isVideo", False)),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("skipping malformed signed url item: %r", item)
        logger.debug(
            "signer batch requested=%s success=%s",
            body.get("totalRequested", len(requests)),
            body.get("totalSuccess", len(signed)),
        )
        return signed

    async def sign_one(self, request: UrlRequest) -> SignedUrl:
        body = await self._post(
            "/signed-urls/single",
            {"storagePath": request.storage_path, "expiresIn": request.ttl_hint, "isVideo": request.is_video},
        )
        try:
            return SignedUrl(
                storage_path=request.storage_path,
                url=body["signedUrl"],
                expires_in=int(body.get("expiresIn", request.ttl_hint)),
                is_video=request.is_video,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SignerUnavailable(f"signer single response malformed for {request.storage_path}") from e


def build_signer() -> SignedUrlSigner:
    if settings.SIGNER_BACKEND == "http":
        return HttpSigner()
    from vaultshare.core.minio_client import minio_client
    return MinioSigner(minio_client)
