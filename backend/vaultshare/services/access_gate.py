from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy import select

from vaultshare.core.config import settings
from vaultshare.core.errors import (
    AccessError,
    ContentUnavailable,
    GateStateError,
    LinkExpired,
    LinkNotFound,
    LinkRevoked,
    MaxViewsExceeded,
    PasswordIncorrect,
)
from vaultshare.core.security import verify_password
from vaultshare.models.nda_signature import NdaSignature
from vaultshare.models.share_link import SecureLink
from vaultshare.monitoring.setup import report_gate_state
from vaultshare.services.resolver import LinkResolver, ResolvedContent, ViewerIdentity, check_link

logger = logging.getLogger("vaultshare.gate")


class GateState(str, Enum):
    CHECKING = "checking"
    INVALID = "invalid"
    REVOKED = "revoked"
    EXPIRED = "expired"
    MAX_VIEWS_EXCEEDED = "max_views_exceeded"
    UNAVAILABLE = "unavailable"
    PASSWORD_REQUIRED = "password_required"
    VIEWER_INFO_REQUIRED = "viewer_info_required"
    NDA_REQUIRED = "nda_required"
    GRANTED = "granted"


TERMINAL_STATES = {
    GateState.INVALID,
    GateState.REVOKED,
    GateState.EXPIRED,
    GateState.MAX_VIEWS_EXCEEDED,
    GateState.UNAVAILABLE,
}

# checked in order, subclasses of ContentUnavailable land on UNAVAILABLE
_FAILURE_STATES = (
    (LinkNotFound, GateState.INVALID),
    (LinkRevoked, GateState.REVOKED),
    (LinkExpired, GateState.EXPIRED),
    (MaxViewsExceeded, GateState.MAX_VIEWS_EXCEEDED),
    (ContentUnavailable, GateState.UNAVAILABLE),
)


@dataclass
class GateSession:
    session_id: str
    token: str
    state: GateState = GateState.CHECKING
    error: Optional[AccessError] = None
    message: Optional[str] = None
    viewer: Optional[ViewerIdentity] = None
    pending_viewer: Optional[ViewerIdentity] = None
    password_verified: bool = False
    nda_signed: bool = False
    content: Optional[ResolvedContent] = None
    selected_document_id: Optional[str] = None
    view_recorded: bool = False
    viewer_ip: Optional[str] = None
    user_agent: Optional[str] = None
    last_seen: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_granted(self) -> bool:
        return self.state == GateState.GRANTED

    def prefill(self) -> ViewerIdentity | None:
        return self.viewer or self.pending_viewer


class GateSessionStore:
    """In-memory gate sessions keyed by (browser session id, link token)."""

    def __init__(self):
        self._sessions: dict[tuple[str, str], GateSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(24)

    def get(self, session_id: str, token: str) -> GateSession | None:
        session = self._sessions.get((session_id, token))
        if session is not None:
            session.last_seen = time.time()
        return session

    def get_or_create(self, session_id: str, token: str) -> GateSession:
        session = self.get(session_id, token)
        if session is None:
            session = GateSession(session_id=session_id, token=token)
            self._sessions[(session_id, token)] = session
        return session

    def sweep(self, max_idle: float | None = None) -> int:
        max_idle = settings.SESSION_IDLE_SECONDS if max_idle is None else max_idle
        cutoff = time.time() - max_idle
        idle = [key for key, session in self._sessions.items() if session.last_seen < cutoff]
        for key in idle:
            del self._sessions[key]
        return len(idle)

    def clear(self) -> None:
        self._sessions.clear()


gate_sessions = GateSessionStore()


class AccessGate:
    """Drives one viewer session through validity, password, identity and NDA challenges."""

    def __init__(self, resolver: LinkResolver):
        self.resolver = resolver
        self.db = resolver.db

    async def open(self, session: GateSession, selected_document_id: str | None = None) -> GateSession:
        """(Re)start the session from ``checking``; also serves as the retry action."""
        self._enter(session, GateState.CHECKING)
        session.error = None
        session.message = None
        session.content = None
        if selected_document_id:
            session.selected_document_id = selected_document_id

        link = await self._load_valid(session)
        if link is None:
            return session
        return await self._settle(session, link)

    async def recheck(self, session: GateSession) -> GateSession:
        """Re-validate a granted session against the current link row before serving from it."""
        if session.is_granted:
            await self._load_valid(session)
        return session

    async def submit_password(self, session: GateSession, password: str, viewer: ViewerIdentity) -> GateSession:
        self._require(session, GateState.PASSWORD_REQUIRED)
        link = await self._load_valid(session)
        if link is None:
            return session

        # identity entered on the password form survives a wrong password
        session.pending_viewer = viewer
        if not verify_password(password, link.password_hash):
            logger.info("incorrect password for link %s", link.id)
            session.error = PasswordIncorrect()
            session.message = session.error.message
            return session

        session.password_verified = True
        session.viewer = viewer
        session.error = None
        session.message = None
        return await self._settle(session, link)

    async def submit_viewer_info(self, session: GateSession, viewer: ViewerIdentity) -> GateSession:
        self._require(session, GateState.VIEWER_INFO_REQUIRED)
        link = await self._load_valid(session)
        if link is None:
            return session

        session.viewer = viewer
        session.error = None
        session.message = None
        return await self._settle(session, link)

    async def sign_nda(self, session: GateSession, signer: ViewerIdentity, signer_ip: str | None = None) -> GateSession:
        self._require(session, GateState.NDA_REQUIRED)
        link = await self._load_valid(session)
        if link is None:
            return session

        now = self.resolver.clock()
        self.db.add(
            NdaSignature(
                link_id=link.id,
                signer_name=signer.name,
                signer_email=signer.email,
                signer_ip=signer_ip,
                signed_at=now,
            )
        )
        link.nda_signed_at = now
        await self.db.commit()
        logger.info("nda signed link=%s signer=%s", link.id, signer.email)

        session.nda_signed = True
        session.error = None
        session.message = None
        return await self._settle(session, link)

    async def _settle(self, session: GateSession, link: SecureLink) -> GateSession:
        """Move to the first unmet challenge, or grant when none is left."""
        try:
            if link.password_hash and not session.password_verified:
                return self._enter(session, GateState.PASSWORD_REQUIRED)

            if session.content is None:
                session.content = await self.resolver.resolve(link, session.selected_document_id)

            if session.viewer is None:
                return self._enter(session, GateState.VIEWER_INFO_REQUIRED)

            if link.nda_required and not session.nda_signed:
                if await self._nda_on_file(link, session.viewer.email):
                    session.nda_signed = True
                else:
                    return self._enter(session, GateState.NDA_REQUIRED)

            return await self._grant(session, link)
        except AccessError as e:
            if not e.fatal:
                raise
            return self._fail(session, e)

    async def _grant(self, session: GateSession, link: SecureLink) -> GateSession:
        # re-read the counters so the view limit is enforced before granting
        await self.db.refresh(link, attribute_names=["status", "expires_at", "max_views", "current_views"])
        check_link(link, self.resolver.clock(), enforce_max_views=not session.view_recorded)

        if not session.view_recorded:
            await self.resolver.record_view(
                link,
                session.viewer,
                document_id=session.content.selected_document_id if session.content else None,
                viewer_ip=session.viewer_ip,
                user_agent=session.user_agent,
            )
            session.view_recorded = True
        if session.content is not None:
            session.content.current_views = link.current_views or 0

        session.error = None
        return self._enter(session, GateState.GRANTED)

    async def _load_valid(self, session: GateSession) -> SecureLink | None:
        try:
            link = await self.resolver.load_link(session.token)
            check_link(link, self.resolver.clock(), enforce_max_views=not session.view_recorded)
        except AccessError as e:
            self._fail(session, e)
            return None
        return link

    async def _nda_on_file(self, link: SecureLink, email: str) -> bool:
        res = await self.db.execute(
            select(NdaSignature.id).where(NdaSignature.link_id == link.id, NdaSignature.signer_email == email).limit(1)
        )
        return res.first() is not None

    def _require(self, session: GateSession, state: GateState) -> None:
        if session.state != state:
            raise GateStateError(f"Expected state '{state.value}', session is in '{session.state.value}'.")

    def _enter(self, session: GateSession, state: GateState) -> GateSession:
        if session.state != state:
            logger.debug("gate %s: %s -> %s", session.token[:8], session.state.value, state.value)
        session.state = state
        report_gate_state(state.value)
        return session

    def _fail(self, session: GateSession, error: AccessError) -> GateSession:
        state = next((st for cls, st in _FAILURE_STATES if isinstance(error, cls)), GateState.INVALID)
        logger.info("gate %s denied: %s", session.token[:8] if session.token else "-", error.kind)
        session.error = error
        session.message = error.message
        session.content = None
        return self._enter(session, state)
