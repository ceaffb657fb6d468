import hmac

from fastapi import Depends, Header, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from vaultshare.core.config import settings
from vaultshare.core.database import get_db
from vaultshare.services.access_gate import AccessGate, GateSession, gate_sessions
from vaultshare.services.resolver import LinkResolver
from vaultshare.services.signer import SIGNER_KEY_HEADER, MinioSigner, SignedUrlSigner, build_signer
from vaultshare.services.url_orchestrator import UrlOrchestrator

_signer: SignedUrlSigner | None = None


def get_signer() -> SignedUrlSigner:
    global _signer
    if _signer is None:
        _signer = build_signer()
    return _signer


def get_minio_signer() -> MinioSigner:
    from vaultshare.core.minio_client import minio_client
    return MinioSigner(minio_client)


def require_signer_key(signer_key: str | None = Header(None, alias=SIGNER_KEY_HEADER)) -> None:
    """Guard for the signing API; presigned URLs are otherwise only handed out through a granted link."""
    if not settings.SIGNER_API_KEY:
        raise HTTPException(status_code=403, detail="Signing API is disabled")
    if not signer_key:
        raise HTTPException(status_code=401, detail="Missing signer key")
    if not hmac.compare_digest(signer_key.encode(), settings.SIGNER_API_KEY.encode()):
        raise HTTPException(status_code=403, detail="Invalid signer key")


def get_orchestrator(signer: SignedUrlSigner = Depends(get_signer)) -> UrlOrchestrator:
    return UrlOrchestrator(signer)


def get_resolver(
    db: AsyncSession = Depends(get_db),
    orchestrator: UrlOrchestrator = Depends(get_orchestrator),
) -> LinkResolver:
    return LinkResolver(db, orchestrator)


def get_gate(resolver: LinkResolver = Depends(get_resolver)) -> AccessGate:
    return AccessGate(resolver)


def session_id_from(request: Request) -> str | None:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session_id,
        httponly=True,
        samesite="lax",
        max_age=settings.SESSION_IDLE_SECONDS,
    )


def gate_session_for(request: Request, response: Response, token: str) -> GateSession:
    """Look up (or start) the caller's gate session for ``token`` and keep the cookie alive."""
    session_id = session_id_from(request) or gate_sessions.new_session_id()
    set_session_cookie(response, session_id)
    session = gate_sessions.get_or_create(session_id, token)
    session.viewer_ip = request.client.host if request.client else None
    session.user_agent = request.headers.get("user-agent")
    return session
