from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vaultshare.core.config import settings
from vaultshare.core.errors import LinkNotFound
from vaultshare.models.document import SecureDocument
from vaultshare.models.folder import SecureFolder
from vaultshare.services.content_types import FILE_CATEGORIES, file_category

logger = logging.getLogger("vaultshare.folders")

SORT_KEYS = ("name-asc", "name-desc", "date-asc", "date-desc", "type")
GRID_PAGE_SIZE = 12
LIST_PAGE_SIZE = 20


class FolderTree:
    """Parent/child and folder/document indexes over a flattened folder listing.

    ``documents`` only need ``id``, ``folder_id``, ``file_name``, ``file_type``
    and ``created_at``, so ORM rows and resolved documents both fit.
    """

    def __init__(self, root: Any, folders: Iterable[Any], documents: Iterable[Any], max_depth: int | None = None):
        self.root = root
        self.max_depth = settings.FOLDER_MAX_DEPTH if max_depth is None else max_depth
        self.folders = [f for f in folders if f.id != root.id]
        self.documents = list(documents)

        self.folders_by_id = {root.id: root}
        self.children_by_parent: dict[str, list[Any]] = {}
        for folder in self.folders:
            self.folders_by_id[folder.id] = folder
            self.children_by_parent.setdefault(folder.parent_folder_id, []).append(folder)

        self.documents_by_folder: dict[str, list[Any]] = {}
        for doc in self.documents:
            self.documents_by_folder.setdefault(doc.folder_id, []).append(doc)

        self._descendants: dict[str, list[str]] = {}

    def with_documents(self, documents: Iterable[Any]) -> "FolderTree":
        return FolderTree(self.root, self.folders, documents, self.max_depth)

    def children(self, folder_id: str) -> list[Any]:
        return sorted(self.children_by_parent.get(folder_id, []), key=lambda f: (f.name or "").casefold())

    def descendant_ids(self, folder_id: str) -> list[str]:
        cached = self._descendants.get(folder_id)
        if cached is not None:
            return list(cached)

        ordered: list[str] = []
        seen = {folder_id}
        stack = [(folder_id, 0)]
        while stack:
            current, depth = stack.pop()
            if depth >= self.max_depth:
                logger.warning("folder tree deeper than %s below %s, truncating", self.max_depth, folder_id)
                continue
            for child in self.children_by_parent.get(current, []):
                if child.id in seen:
                    logger.warning("folder %s reached twice under %s, skipping", child.id, folder_id)
                    continue
                seen.add(child.id)
                ordered.append(child.id)
                memo = self._descendants.get(child.id)
                if memo is None:
                    stack.append((child.id, depth + 1))
                    continue
                for descendant in memo:
                    if descendant not in seen:
                        seen.add(descendant)
                        ordered.append(descendant)

        self._descendants[folder_id] = ordered
        return list(ordered)

    def documents_for_folder(self, folder_id: str) -> list[Any]:
        docs: list[Any] = []
        seen: set[str] = set()
        for fid in [folder_id, *self.descendant_ids(folder_id)]:
            for doc in self.documents_by_folder.get(fid, []):
                if doc.id in seen:
                    continue
                seen.add(doc.id)
                docs.append(doc)
        return docs

    def document_count(self, folder_id: str) -> int:
        return len(self.documents_for_folder(folder_id))

    def category_counts(self, folder_id: str) -> dict[str, int]:
        counts = Counter(file_category(doc.file_type, doc.file_name) for doc in self.documents_for_folder(folder_id))
        return {category: counts.get(category, 0) for category in FILE_CATEGORIES}

    def breadcrumbs(self, folder_id: str) -> list[Any]:
        trail: list[Any] = []
        seen: set[str] = set()
        current = folder_id
        while current and current not in seen:
            folder = self.folders_by_id.get(current)
            if folder is None:
                break
            seen.add(current)
            trail.insert(0, folder)
            if current == self.root.id:
                break
            current = folder.parent_folder_id
        return trail

    def contains(self, folder_id: str) -> bool:
        return folder_id in self.folders_by_id


def filter_documents(documents: Sequence[Any], query: str | None = None, category: str | None = None) -> list[Any]:
    needle = (query or "").strip().casefold()
    out = []
    for doc in documents:
        if needle and needle not in (doc.file_name or "").casefold():
            continue
        if category and category != "all" and file_category(doc.file_type, doc.file_name) != category:
            continue
        out.append(doc)
    return out


def sort_documents(documents: Sequence[Any], sort_by: str = "name-asc") -> list[Any]:
    def name_key(doc):
        return (doc.file_name or "").casefold()

    def date_key(doc):
        return doc.created_at or datetime.min

    if sort_by == "name-asc":
        return sorted(documents, key=name_key)
    if sort_by == "name-desc":
        return sorted(documents, key=name_key, reverse=True)
    if sort_by == "date-asc":
        return sorted(documents, key=date_key)
    if sort_by == "date-desc":
        return sorted(documents, key=date_key, reverse=True)
    if sort_by == "type":
        return sorted(documents, key=lambda doc: file_category(doc.file_type, doc.file_name))
    return list(documents)


@dataclass
class Page:
    items: list[Any]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1


def paginate(documents: Sequence[Any], page: int = 1, per_page: int = GRID_PAGE_SIZE) -> Page:
    total = len(documents)
    pages = max(1, math.ceil(total / per_page)) if per_page else 1
    page = min(max(page, 1), pages)
    start = (page - 1) * per_page
    return Page(items=list(documents[start:start + per_page]), page=page, per_page=per_page, total=total)


class FolderTreeLoader:
    """Discovers the active folder tree under a root, one query per folder, memoized per folder id."""

    def __init__(self, db: AsyncSession, max_depth: int | None = None):
        self.db = db
        self.max_depth = settings.FOLDER_MAX_DEPTH if max_depth is None else max_depth
        self._subfolders: dict[str, list[SecureFolder]] = {}
        self._descendants: dict[str, list[str]] = {}
        self._folders: dict[str, SecureFolder] = {}

    async def fetch_subfolders(self, folder_id: str) -> list[SecureFolder]:
        if folder_id not in self._subfolders:
            res = await self.db.execute(
                select(SecureFolder)
                .where(SecureFolder.parent_folder_id == folder_id, SecureFolder.is_active == True)  # noqa: E712
                .order_by(SecureFolder.name)
            )
            children = list(res.scalars().all())
            for child in children:
                self._folders[child.id] = child
            self._subfolders[folder_id] = children
        return self._subfolders[folder_id]

    async def descendant_ids(self, folder_id: str, depth: int = 0, trail: frozenset = frozenset()) -> list[str]:
        if folder_id in self._descendants:
            return self._descendants[folder_id]
        if depth >= self.max_depth:
            logger.warning("folder %s is nested deeper than %s levels, not descending further", folder_id, self.max_depth)
            return []

        trail = trail | {folder_id}
        ids: list[str] = []
        for child in await self.fetch_subfolders(folder_id):
            if child.id in trail:
                logger.warning("folder cycle detected at %s -> %s", folder_id, child.id)
                continue
            ids.append(child.id)
            ids.extend(await self.descendant_ids(child.id, depth + 1, trail))

        ids = list(dict.fromkeys(ids))
        self._descendants[folder_id] = ids
        return ids

    async def expand(self, root_folder_id: str) -> FolderTree:
        root = await self.db.get(SecureFolder, root_folder_id)
        if root is None or not root.is_active:
            raise LinkNotFound("The shared folder no longer exists.")

        ids = await self.descendant_ids(root.id)
        folders = [self._folders[fid] for fid in ids]

        res = await self.db.execute(
            select(SecureDocument)
            .where(SecureDocument.folder_id.in_([root.id, *ids]), SecureDocument.is_active == True)  # noqa: E712
            .order_by(SecureDocument.created_at)
        )
        documents = list(res.scalars().all())
        logger.info("expanded folder %s: %s folders, %s documents", root.id, len(folders), len(documents))
        return FolderTree(root, folders, documents, self.max_depth)
