from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from vaultshare.core.config import settings
from vaultshare.core.errors import ContentUnavailable, SignerUnavailable
from vaultshare.monitoring.setup import report_batch_failure, report_fallback, report_url_lookup
from vaultshare.services.signer import SignedUrl, SignedUrlSigner, UrlRequest
from vaultshare.services.url_cache import UrlCache, url_cache

logger = logging.getLogger("vaultshare.urls")


@dataclass(frozen=True)
class Resolved:
    url: str
    expires_in: int


@dataclass(frozen=True)
class Failed:
    reason: str


UrlResult = Union[Resolved, Failed]


def resolved_urls(results: dict[str, UrlResult]) -> dict[str, str]:
    return {path: result.url for path, result in results.items() if isinstance(result, Resolved)}


class UrlOrchestrator:
    """Turns storage paths into signed URLs: cache first, one batch call, then per-item retries."""

    def __init__(
        self,
        signer: SignedUrlSigner,
        cache: UrlCache | None = None,
        retry_attempts: int | None = None,
        retry_backoff: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.signer = signer
        self.cache = url_cache if cache is None else cache
        self.retry_attempts = settings.SIGNED_URL_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts
        self.retry_backoff = settings.SIGNED_URL_RETRY_BACKOFF_SECS if retry_backoff is None else retry_backoff
        self.sleep = sleep

    async def resolve_urls(self, requests: list[UrlRequest], required: bool = False) -> dict[str, UrlResult]:
        results: dict[str, UrlResult] = {}
        pending: list[UrlRequest] = []
        seen: set[str] = set()

        for request in requests:
            if request.storage_path in seen:
                continue
            seen.add(request.storage_path)
            entry = self.cache.get_entry(request.storage_path, request.content_class)
            remaining = int(entry.issued_at + entry.ttl_seconds - self.cache.clock()) if entry is not None else 0
            # a cached url must not outlive the link asking for it
            if entry is not None and remaining <= request.ttl_hint:
                results[request.storage_path] = Resolved(entry.url, remaining)
            else:
                pending.append(request)

        report_url_lookup(hits=len(results), misses=len(pending))
        if not pending:
            return results

        try:
            signed = await self.signer.sign_batch(pending)
        except SignerUnavailable as e:
            report_batch_failure()
            logger.warning("batch signing failed for %s items, falling back to single requests: %s", len(pending), e)
            fetched = await self._fetch_individually(pending)
        else:
            fetched = self._collect_batch(pending, signed)

        results.update(fetched)

        failed = [path for path, result in fetched.items() if isinstance(result, Failed)]
        for path in failed:
            logger.warning("signed url unresolved path=%s reason=%s", path, fetched[path].reason)

        if required and len(failed) == len(pending) and not resolved_urls(results):
            raise ContentUnavailable()
        return results

    def _collect_batch(self, pending: list[UrlRequest], signed: list[SignedUrl]) -> dict[str, UrlResult]:
        by_path = {item.storage_path: item for item in signed}
        out: dict[str, UrlResult] = {}
        for request in pending:
            item = by_path.get(request.storage_path)
            if item is None:
                out[request.storage_path] = Failed("missing from batch response")
            else:
                out[request.storage_path] = self._accept(request, item)
        return out

    async def _fetch_individually(self, pending: list[UrlRequest]) -> dict[str, UrlResult]:
        fetched = await asyncio.gather(*(self._fetch_with_retry(request) for request in pending))
        out = {request.storage_path: result for request, result in zip(pending, fetched)}
        report_fallback(
            requested=len(pending),
            failed=sum(1 for result in fetched if isinstance(result, Failed)),
        )
        return out

    async def _fetch_with_retry(self, request: UrlRequest) -> UrlResult:
        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                item = await self.signer.sign_one(request)
                return self._accept(request, item)
            except SignerUnavailable as e:
                last_error = e
                logger.warning(
                    "single signing failed (attempt %s/%s) path=%s err=%s",
                    attempt, self.retry_attempts, request.storage_path, e,
                )
                if attempt < self.retry_attempts:
                    await self.sleep(self.retry_backoff * attempt)
        return Failed(f"gave up after {self.retry_attempts} attempts: {last_error}")

    def _accept(self, request: UrlRequest, item: SignedUrl) -> UrlResult:
        if item.expires_in <= 0:
            return Failed("expired on arrival")
        self.cache.put(request.storage_path, request.content_class, item.url, item.expires_in)
        return Resolved(item.url, item.expires_in)
