from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vaultshare.core.errors import (
    BundleEmpty,
    ContentUnavailable,
    FolderEmpty,
    LinkExpired,
    LinkNotFound,
    LinkRevoked,
    MaxViewsExceeded,
)
from vaultshare.models.document import SecureDocument
from vaultshare.models.share_link import LINK_STATUS_EXPIRED, LINK_STATUS_REVOKED, SecureLink
from vaultshare.models.viewer_activity import ViewerActivity
from vaultshare.services.content_types import content_class, expiry_window, file_category, is_video
from vaultshare.services.folder_tree import FolderTree, FolderTreeLoader
from vaultshare.services.signer import UrlRequest
from vaultshare.services.url_orchestrator import Failed, UrlOrchestrator, UrlResult

logger = logging.getLogger("vaultshare.resolver")


@dataclass
class ViewerIdentity:
    name: str
    email: str


@dataclass
class ResolvedDocument:
    id: str
    file_name: str
    file_type: Optional[str]
    file_size: int
    description: Optional[str]
    folder_id: Optional[str]
    created_at: Optional[datetime]
    storage_path: str
    signed_url: str
    url_expires_in: int
    is_video: bool
    category: str


@dataclass
class ResolvedContent:
    kind: str
    link_id: str
    link_name: Optional[str]
    access_level: str
    expires_at: Optional[datetime]
    max_views: Optional[int]
    current_views: int
    documents: list[ResolvedDocument] = field(default_factory=list)
    bundle_name: Optional[str] = None
    folder_tree: Optional[FolderTree] = None
    selected_document_id: Optional[str] = None

    @property
    def allows_download(self) -> bool:
        return self.access_level == "download"

    def document(self, document_id: str) -> ResolvedDocument | None:
        return next((doc for doc in self.documents if doc.id == document_id), None)


def check_link(link: SecureLink | None, now: datetime, enforce_max_views: bool = True) -> None:
    """Static validity checks, in order; the first failing one wins.

    ``enforce_max_views`` is turned off for a session whose own view has
    already been counted, so re-opening it does not lock the viewer out.
    """
    if link is None:
        raise LinkNotFound()
    if link.status == LINK_STATUS_REVOKED:
        raise LinkRevoked()
    if link.status == LINK_STATUS_EXPIRED or (link.expires_at is not None and now > link.expires_at):
        raise LinkExpired()
    if enforce_max_views and link.max_views is not None and (link.current_views or 0) >= link.max_views:
        raise MaxViewsExceeded()


class LinkResolver:
    def __init__(
        self,
        db: AsyncSession,
        orchestrator: UrlOrchestrator,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.clock = clock

    async def load_link(self, token: str | None) -> SecureLink:
        if not token or not token.strip():
            raise LinkNotFound()
        res = await self.db.execute(
            select(SecureLink)
            .where(SecureLink.link_token == token)
            .execution_options(populate_existing=True)
        )
        link = res.scalars().first()
        if link is None:
            raise LinkNotFound()
        if link.content_kind is None:
            logger.error("link %s does not reference exactly one document, bundle or folder", link.id)
            raise LinkNotFound()
        return link

    async def resolve_token(self, token: str, selected_document_id: str | None = None) -> ResolvedContent:
        link = await self.load_link(token)
        check_link(link, self.clock())
        return await self.resolve(link, selected_document_id)

    async def resolve(self, link: SecureLink, selected_document_id: str | None = None) -> ResolvedContent:
        kind = link.content_kind
        content = ResolvedContent(
            kind=kind,
            link_id=link.id,
            link_name=link.link_name,
            access_level=link.access_level,
            expires_at=link.expires_at,
            max_views=link.max_views,
            current_views=link.current_views or 0,
        )

        if kind == "document":
            content.documents = await self._resolve_document(link)
        elif kind == "bundle":
            content.bundle_name, content.documents = await self._resolve_bundle(link)
        elif kind == "folder":
            content.folder_tree = await self._resolve_folder(link)
            content.documents = content.folder_tree.documents
        else:
            raise LinkNotFound()

        if selected_document_id and content.document(selected_document_id):
            content.selected_document_id = selected_document_id
        else:
            content.selected_document_id = content.documents[0].id
        return content

    async def _resolve_document(self, link: SecureLink) -> list[ResolvedDocument]:
        doc = link.document
        if doc is None or not doc.is_active:
            raise ContentUnavailable("The shared document is no longer available.")
        results = await self.orchestrator.resolve_urls([self._url_request(link, doc)], required=True)
        resolved = self._materialize([doc], results)
        if not resolved:
            raise ContentUnavailable()
        return resolved

    async def _resolve_bundle(self, link: SecureLink) -> tuple[str, list[ResolvedDocument]]:
        bundle = link.bundle
        if bundle is None or not bundle.is_active:
            raise LinkNotFound("The shared bundle no longer exists.")

        items = sorted(
            bundle.items,
            key=lambda item: (item.display_order is None, item.display_order or 0, item.created_at or datetime.min),
        )
        docs = [item.document for item in items if item.document is not None and item.document.is_active]
        if not docs:
            raise BundleEmpty()

        results = await self.orchestrator.resolve_urls([self._url_request(link, doc) for doc in docs])
        resolved = self._materialize(docs, results)
        if not resolved:
            raise ContentUnavailable()
        return bundle.name, resolved

    async def _resolve_folder(self, link: SecureLink) -> FolderTree:
        tree = await FolderTreeLoader(self.db).expand(link.folder_id)
        docs = tree.documents
        if not docs:
            raise FolderEmpty()

        results = await self.orchestrator.resolve_urls([self._url_request(link, doc) for doc in docs])
        resolved = self._materialize(docs, results)
        if not resolved:
            raise ContentUnavailable()
        return tree.with_documents(resolved)

    def _url_request(self, link: SecureLink, doc: SecureDocument) -> UrlRequest:
        video = is_video(doc.file_type, doc.file_name)
        return UrlRequest(
            storage_path=doc.storage_path,
            content_class=content_class(doc.file_type, doc.file_name),
            ttl_hint=expiry_window(video, link.expires_at, self.clock()),
        )

    def _materialize(self, docs: list[SecureDocument], results: dict[str, UrlResult]) -> list[ResolvedDocument]:
        resolved = []
        for doc in docs:
            result = results.get(doc.storage_path)
            if result is None or isinstance(result, Failed):
                logger.warning(
                    "dropping document %s (%s): %s",
                    doc.id, doc.file_name, result.reason if result else "no result",
                )
                continue
            resolved.append(
                ResolvedDocument(
                    id=doc.id,
                    file_name=doc.file_name,
                    file_type=doc.file_type,
                    file_size=doc.file_size or 0,
                    description=doc.description,
                    folder_id=doc.folder_id,
                    created_at=doc.created_at,
                    storage_path=doc.storage_path,
                    signed_url=result.url,
                    url_expires_in=result.expires_in,
                    is_video=is_video(doc.file_type, doc.file_name),
                    category=file_category(doc.file_type, doc.file_name),
                )
            )
        return resolved

    async def record_view(
        self,
        link: SecureLink,
        viewer: ViewerIdentity,
        document_id: str | None = None,
        viewer_ip: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        now = self.clock()
        # plain read-then-increment, concurrent viewers can both get in at the limit
        link.current_views = (link.current_views or 0) + 1
        link.last_accessed_at = now
        self.db.add(
            ViewerActivity(
                link_id=link.id,
                document_id=document_id,
                viewer_name=viewer.name,
                viewer_email=viewer.email,
                viewer_ip=viewer_ip,
                user_agent=user_agent,
                opened_at=now,
            )
        )
        await self.db.commit()
        logger.info("view recorded link=%s views=%s/%s", link.id, link.current_views, link.max_views)
