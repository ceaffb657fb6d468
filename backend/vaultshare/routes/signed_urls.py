import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from vaultshare.core.errors import SignerUnavailable
from vaultshare.dependencies import get_minio_signer, require_signer_key
from vaultshare.schemas.signed_url import (
    SignedUrlBatchRequest,
    SignedUrlBatchResponse,
    SignedUrlItem,
    SignedUrlRequestItem,
    SignedUrlSingleResponse,
)
from vaultshare.services.content_types import CONTENT_CLASS_DOCUMENT, CONTENT_CLASS_VIDEO
from vaultshare.services.signer import MinioSigner, UrlRequest

logger = logging.getLogger("vaultshare")

router = APIRouter(prefix="/signed-urls", tags=["Signed URLs"], dependencies=[Depends(require_signer_key)])


def _to_request(item: SignedUrlRequestItem) -> UrlRequest:
    return UrlRequest(
        storage_path=item.storage_path,
        content_class=CONTENT_CLASS_VIDEO if item.is_video else CONTENT_CLASS_DOCUMENT,
        ttl_hint=item.expires_in,
    )


@router.post("/batch", response_model=SignedUrlBatchResponse)
async def sign_batch(body: SignedUrlBatchRequest, signer: MinioSigner = Depends(get_minio_signer)):
    try:
        signed = await signer.sign_batch([_to_request(item) for item in body.requests])
    except SignerUnavailable as e:
        logger.error("batch signing failed: %s", e)
        return JSONResponse(status_code=502, content={"error": "Storage is temporarily unavailable"})

    logger.info("signed %s of %s urls", len(signed), len(body.requests))
    return SignedUrlBatchResponse(
        signed_urls=[
            SignedUrlItem(
                storage_path=item.storage_path,
                signed_url=item.url,
                expires_in=item.expires_in,
                is_video=item.is_video,
            )
            for item in signed
        ],
        total_requested=len(body.requests),
        total_success=len(signed),
    )


@router.post("/single", response_model=SignedUrlSingleResponse)
async def sign_single(body: SignedUrlRequestItem, signer: MinioSigner = Depends(get_minio_signer)):
    try:
        item = await signer.sign_one(_to_request(body))
    except SignerUnavailable as e:
        logger.warning("single signing failed: %s", e)
        return JSONResponse(status_code=502, content={"error": "Could not sign URL"})
    return SignedUrlSingleResponse(signed_url=item.url, expires_in=item.expires_in)
