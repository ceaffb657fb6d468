from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, constr


class ViewerInfoRequest(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=200)
    email: EmailStr

class PasswordRequest(BaseModel):
    password: str
    viewer_name: constr(strip_whitespace=True, min_length=1, max_length=200)
    viewer_email: EmailStr

class NdaSignRequest(BaseModel):
    signer_name: constr(strip_whitespace=True, min_length=1, max_length=200)
    signer_email: EmailStr
    accepted: bool = True

class ErrorOut(BaseModel):
    kind: str
    title: str
    detail: str
    fatal: bool

class ViewerOut(BaseModel):
    name: str
    email: str

    class Config:
        from_attributes = True

class DocumentOut(BaseModel):
    id: str
    file_name: str
    file_type: str | None
    file_size: int
    description: str | None
    folder_id: str | None
    created_at: datetime | None
    category: str
    is_video: bool
    signed_url: str
    url_expires_in: int

    class Config:
        from_attributes = True

class FolderOut(BaseModel):
    id: str
    name: str
    parent_folder_id: str | None
    document_count: int = 0

class ContentOut(BaseModel):
    kind: str
    link_name: str | None
    access_level: str
    allows_download: bool
    expires_at: datetime | None
    max_views: int | None
    current_views: int
    selected_document_id: str | None
    bundle_name: str | None = None
    root_folder: FolderOut | None = None
    folders: list[FolderOut] = []
    documents: list[DocumentOut]

class GateStateOut(BaseModel):
    token: str
    state: str
    terminal: bool
    message: str | None = None
    error: ErrorOut | None = None
    viewer: ViewerOut | None = None
    content: ContentOut | None = None

class FolderViewOut(BaseModel):
    folder: FolderOut
    breadcrumbs: list[FolderOut]
    subfolders: list[FolderOut]
    documents: list[DocumentOut]
    category_counts: dict[str, int]
    page: int
    per_page: int
    total: int
    total_pages: int
