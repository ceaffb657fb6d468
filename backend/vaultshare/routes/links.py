from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from vaultshare.core.errors import GateStateError, NdaNotSigned
from vaultshare.dependencies import gate_session_for, get_gate
from vaultshare.schemas.link import (
    ContentOut,
    DocumentOut,
    ErrorOut,
    FolderOut,
    FolderViewOut,
    GateStateOut,
    NdaSignRequest,
    PasswordRequest,
    ViewerInfoRequest,
    ViewerOut,
)
from vaultshare.services.access_gate import AccessGate, GateSession, GateState
from vaultshare.services.folder_tree import (
    GRID_PAGE_SIZE,
    LIST_PAGE_SIZE,
    FolderTree,
    filter_documents,
    paginate,
    sort_documents,
)
from vaultshare.services.resolver import ResolvedContent, ViewerIdentity

router = APIRouter(prefix="/links", tags=["Secure Links"])


def _folder_out(tree: FolderTree, folder) -> FolderOut:
    return FolderOut(
        id=folder.id,
        name=folder.name or "Untitled",
        parent_folder_id=folder.parent_folder_id,
        document_count=tree.document_count(folder.id),
    )


def content_out(content: ResolvedContent) -> ContentOut:
    out = ContentOut(
        kind=content.kind,
        link_name=content.link_name,
        access_level=content.access_level,
        allows_download=content.allows_download,
        expires_at=content.expires_at,
        max_views=content.max_views,
        current_views=content.current_views,
        selected_document_id=content.selected_document_id,
        bundle_name=content.bundle_name,
        documents=[DocumentOut.model_validate(doc) for doc in content.documents],
    )
    tree = content.folder_tree
    if tree is not None:
        out.root_folder = _folder_out(tree, tree.root)
        out.folders = [_folder_out(tree, folder) for folder in tree.folders]
    return out


def state_out(session: GateSession) -> GateStateOut:
    viewer = session.prefill()
    return GateStateOut(
        token=session.token,
        state=session.state.value,
        terminal=session.is_terminal,
        message=session.message,
        error=ErrorOut(**session.error.to_dict()) if session.error else None,
        viewer=ViewerOut(name=viewer.name, email=viewer.email) if viewer else None,
        content=content_out(session.content) if session.is_granted and session.content else None,
    )


def _apply_status(response: Response, session: GateSession) -> None:
    if session.error is not None:
        response.status_code = session.error.status_code


async def _ensure_opened(gate: AccessGate, session: GateSession) -> None:
    if session.state == GateState.CHECKING:
        await gate.open(session)


def _require_granted(session: GateSession) -> None:
    if session.is_granted and session.content is not None:
        return
    if session.is_terminal and session.error is not None:
        raise session.error
    if session.state == GateState.NDA_REQUIRED:
        raise NdaNotSigned()
    raise GateStateError("Complete the access checks before requesting content.")


@router.get("/{token}", response_model=GateStateOut)
async def open_link(
    token: str,
    request: Request,
    response: Response,
    document: str | None = Query(None, description="Document to show first in a bundle or folder"),
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, response, token)
    await gate.open(session, selected_document_id=document)
    _apply_status(response, session)
    return state_out(session)


@router.post("/{token}/password", response_model=GateStateOut)
async def submit_password(
    token: str,
    body: PasswordRequest,
    request: Request,
    response: Response,
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, response, token)
    await _ensure_opened(gate, session)
    await gate.submit_password(
        session,
        body.password,
        ViewerIdentity(name=body.viewer_name, email=str(body.viewer_email)),
    )
    _apply_status(response, session)
    return state_out(session)


@router.post("/{token}/viewer", response_model=GateStateOut)
async def submit_viewer_info(
    token: str,
    body: ViewerInfoRequest,
    request: Request,
    response: Response,
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, response, token)
    await _ensure_opened(gate, session)
    await gate.submit_viewer_info(session, ViewerIdentity(name=body.name, email=str(body.email)))
    _apply_status(response, session)
    return state_out(session)


@router.post("/{token}/nda", response_model=GateStateOut)
async def sign_nda(
    token: str,
    body: NdaSignRequest,
    request: Request,
    response: Response,
    gate: AccessGate = Depends(get_gate),
):
    if not body.accepted:
        raise HTTPException(status_code=400, detail="The NDA must be accepted to continue")
    session = gate_session_for(request, response, token)
    await _ensure_opened(gate, session)
    await gate.sign_nda(
        session,
        ViewerIdentity(name=body.signer_name, email=str(body.signer_email)),
        signer_ip=session.viewer_ip,
    )
    _apply_status(response, session)
    return state_out(session)


@router.get("/{token}/content", response_model=ContentOut)
async def get_content(
    token: str,
    request: Request,
    response: Response,
    document: str | None = Query(None),
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, response, token)
    await gate.recheck(session)
    _require_granted(session)
    content = session.content
    if document:
        if content.document(document) is None:
            raise HTTPException(status_code=404, detail="Document not found")
        content.selected_document_id = document
    return content_out(content)


@router.get("/{token}/folders/{folder_id}", response_model=FolderViewOut)
async def browse_folder(
    token: str,
    folder_id: str,
    request: Request,
    response: Response,
    q: str | None = Query(None, max_length=200, description="Substring match on file name"),
    category: str = Query("all", pattern="^(all|pdf|image|video|audio|document|other)$"),
    sort: str = Query("name-asc", pattern="^(name-asc|name-desc|date-asc|date-desc|type)$"),
    view: str = Query("grid", pattern="^(grid|list)$"),
    page: int = Query(1, ge=1),
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, response, token)
    await gate.recheck(session)
    _require_granted(session)
    tree = session.content.folder_tree
    if tree is None:
        raise HTTPException(status_code=400, detail="This link does not share a folder")
    if not tree.contains(folder_id):
        raise HTTPException(status_code=404, detail="Folder not found")

    docs = sort_documents(filter_documents(tree.documents_for_folder(folder_id), q, category), sort)
    result = paginate(docs, page, GRID_PAGE_SIZE if view == "grid" else LIST_PAGE_SIZE)

    return FolderViewOut(
        folder=_folder_out(tree, tree.folders_by_id[folder_id]),
        breadcrumbs=[_folder_out(tree, f) for f in tree.breadcrumbs(folder_id)],
        subfolders=[_folder_out(tree, f) for f in tree.children(folder_id)],
        documents=[DocumentOut.model_validate(doc) for doc in result.items],
        category_counts=tree.category_counts(folder_id),
        page=result.page,
        per_page=result.per_page,
        total=result.total,
        total_pages=result.total_pages,
    )
