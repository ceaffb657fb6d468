from __future__ import annotations

import html
import json
import math
import urllib.parse

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse

from vaultshare.core.config import settings
from vaultshare.dependencies import gate_session_for, get_gate, set_session_cookie
from vaultshare.services.access_gate import AccessGate, GateSession, GateState
from vaultshare.services.resolver import ResolvedContent, ResolvedDocument
from vaultshare.utils.urls import link_url

router = APIRouter(tags=["Viewer"])


# -----------------------------
# Helpers
# -----------------------------

def _human_size(n: int | None) -> str:
    if n is None:
        return "unknown"
    units = ["B", "KB", "MB", "GB", "TB"]
    if n == 0:
        return "0 B"
    p = min(int(math.log(n, 1024)), len(units) - 1)
    return f"{n / (1024 ** p):.2f} {units[p]}"

def _e(value) -> str:
    return html.escape(str(value or ""))

STYLE = """
    :root { --bg:#0b0d10; --card:#151a20; --fg:#e7edf3; --muted:#9fb0c3; --accent:#2a7cff; --danger:#ff5a5f; }
    html,body { height:100%; }
    body { margin:0; background:var(--bg); color:var(--fg); font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; }
    body.protected { -webkit-user-select:none; user-select:none; }
    .wrap { max-width:1080px; margin:0 auto; padding:40px 20px; }
    .card { background:var(--card); border-radius:20px; padding:28px; box-shadow: 0 10px 30px rgba(0,0,0,.25); }
    h1 { font-size:22px; margin:0 0 12px; }
    p { margin: 6px 0; color:var(--muted); }
    label { display:block; margin-top:12px; font-size:14px; color:var(--muted); }
    input[type=text], input[type=email], input[type=password] { width:100%; box-sizing:border-box; padding:10px 12px; border-radius:10px; border:1px solid #2b3340; background:#0f1318; color:var(--fg); }
    .row { display:flex; gap:12px; align-items:center; flex-wrap:wrap; margin-top:20px; }
    .btn { text-decoration:none; display:inline-block; padding:12px 18px; border-radius:12px; background:var(--accent); color:white; font-weight:600; border:0; cursor:pointer; }
    .btn.secondary { background:#2b3340; color:#d7e1ea; }
    .error { color:var(--danger); }
    .layout { display:grid; grid-template-columns: 280px 1fr; gap:20px; }
    .docs a { display:block; padding:8px 10px; border-radius:8px; color:var(--fg); text-decoration:none; }
    .docs a.active { background:var(--accent); }
    .crumbs a { color:var(--muted); }
    .stage img, .stage video, .stage iframe { width:100%; border:0; border-radius:12px; }
    .stage iframe { height:75vh; background:white; }
    .meta { margin-top:10px; font-size:14px; }
"""

PROTECT_SCRIPT = """
  <script>
    document.addEventListener('keydown', (e) => {
      const k = (e.key || '').toLowerCase();
      if ((e.ctrlKey || e.metaKey) && (k === 's' || k === 'p')) { e.preventDefault(); }
    });
  </script>"""

def _page(title: str, body: str, protected: bool = False) -> str:
    body_attrs = ' class="protected" oncontextmenu="return false;" ondragstart="return false;"' if protected else ""
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta name="robots" content="noindex">
  <title>{_e(title)}</title>
  <style>{STYLE}</style>
</head>
<body{body_attrs}>
  <div class="wrap">
{body}
  </div>{PROTECT_SCRIPT if protected else ""}
</body>
</html>"""

def _form_script(endpoint: str, fields: list[str]) -> str:
    return f"""
  <script>
    document.getElementById('gate-form').addEventListener('submit', async (e) => {{
      e.preventDefault();
      const form = e.target;
      const payload = {{}};
      for (const name of {json.dumps(fields)}) {{
        const el = form.elements[name];
        payload[name] = el.type === 'checkbox' ? el.checked : el.value;
      }}
      const status = document.getElementById('status');
      status.textContent = '';
      const res = await fetch({json.dumps(endpoint)}, {{
        method: 'POST',
        headers: {{ 'Content-Type': 'application/json' }},
        credentials: 'same-origin',
        body: JSON.stringify(payload),
      }});
      const data = await res.json().catch(() => ({{}}));
      if (res.ok || (data.state && data.terminal)) {{ window.location.reload(); return; }}
      status.textContent = data.message || data.detail || 'Something went wrong, please try again.';
    }});
  </script>"""


# -----------------------------
# One renderer per gate state
# -----------------------------

def _render_terminal(session: GateSession, request: Request) -> str:
    error = session.error
    title = error.title if error else "Access Denied"
    message = error.message if error else "This link cannot be opened."
    body = f"""    <div class="card">
      <h1>{_e(title)}</h1>
      <p>{_e(message)}</p>
      <div class="row">
        <button class="btn" onclick="window.location.reload()">Try again</button>
        <a class="btn secondary" href="{_e(settings.HOME_URL)}">Go home</a>
      </div>
    </div>"""
    return _page(title, body)

def _identity_inputs(session: GateSession, name_field: str, email_field: str) -> str:
    viewer = session.prefill()
    return f"""
        <label for="{name_field}">Your name</label>
        <input type="text" id="{name_field}" name="{name_field}" required value="{_e(viewer.name if viewer else '')}">
        <label for="{email_field}">Your email</label>
        <input type="email" id="{email_field}" name="{email_field}" required value="{_e(viewer.email if viewer else '')}">"""

def _render_challenge(session: GateSession, request: Request, heading: str, intro: str, inputs: str,
                      endpoint: str, fields: list[str], submit_label: str) -> str:
    body = f"""    <div class="card">
      <h1>{_e(heading)}</h1>
      <p>{_e(intro)}</p>
      <form id="gate-form">{inputs}
        <div class="row"><button class="btn" type="submit">{_e(submit_label)}</button></div>
      </form>
      <p class="meta error" id="status">{_e(session.message)}</p>
    </div>{_form_script(endpoint, fields)}"""
    return _page(heading, body)

def _render_password(session: GateSession, request: Request) -> str:
    inputs = _identity_inputs(session, "viewer_name", "viewer_email") + """
        <label for="password">Password</label>
        <input type="password" id="password" name="password" required autocomplete="off">"""
    return _render_challenge(
        session, request,
        heading="Password Required",
        intro="This content is password protected. Enter your details and the password to continue.",
        inputs=inputs,
        endpoint=link_url(request, session.token, "/password"),
        fields=["viewer_name", "viewer_email", "password"],
        submit_label="Unlock",
    )

def _render_viewer_info(session: GateSession, request: Request) -> str:
    return _render_challenge(
        session, request,
        heading="Before you continue",
        intro="Please tell us who you are to view this content.",
        inputs=_identity_inputs(session, "name", "email"),
        endpoint=link_url(request, session.token, "/viewer"),
        fields=["name", "email"],
        submit_label="Continue",
    )

def _render_nda(session: GateSession, request: Request) -> str:
    inputs = _identity_inputs(session, "signer_name", "signer_email") + """
        <label><input type="checkbox" name="accepted" required> I agree to keep this material confidential
        and not to disclose it to any third party.</label>"""
    return _render_challenge(
        session, request,
        heading="Non-Disclosure Agreement",
        intro="The owner of this content requires an NDA signature before it can be viewed.",
        inputs=inputs,
        endpoint=link_url(request, session.token, "/nda"),
        fields=["signer_name", "signer_email", "accepted"],
        submit_label="Sign and continue",
    )

def _render_checking(session: GateSession, request: Request) -> str:
    body = """    <div class="card"><h1>Checking link…</h1><p>One moment please.</p></div>
  <script>setTimeout(() => window.location.reload(), 1000);</script>"""
    return _page("Checking link", body)

def _render_stage(doc: ResolvedDocument, allow_download: bool) -> str:
    url = _e(doc.signed_url)
    if doc.category == "image":
        media = f'<img src="{url}" alt="{_e(doc.file_name)}" draggable="false">'
    elif doc.category == "video":
        controls = "" if allow_download else ' controlsList="nodownload" disablePictureInPicture'
        media = f'<video src="{url}" controls{controls}></video>'
    elif doc.category == "audio":
        controls = "" if allow_download else ' controlsList="nodownload"'
        media = f'<audio src="{url}" controls{controls}></audio>'
    elif doc.category == "pdf":
        suffix = "" if allow_download else "#toolbar=0"
        media = f'<iframe src="{url}{suffix}" title="{_e(doc.file_name)}"></iframe>'
    else:
        media = '<p>Preview is not available for this file type.</p>'

    download = ""
    if allow_download:
        download = f'<a class="btn" href="{url}" download="{_e(doc.file_name)}">Download</a>'
    return f"""      <div class="stage">
        <h1>{_e(doc.file_name)}</h1>
        <p class="meta">{_e(_human_size(doc.file_size))}{(' · ' + _e(doc.description)) if doc.description else ''}</p>
        {media}
        <div class="row">{download}</div>
      </div>"""

def _doc_link(session: GateSession, doc: ResolvedDocument, active: bool, folder_id: str | None) -> str:
    params = {"document": doc.id}
    if folder_id:
        params["folder"] = folder_id
    href = f"/s/{urllib.parse.quote(session.token)}?{urllib.parse.urlencode(params)}"
    return f'<a href="{_e(href)}" class="{"active" if active else ""}">{_e(doc.file_name)}</a>'

def _render_granted(session: GateSession, request: Request, folder_id: str | None = None) -> str:
    content: ResolvedContent = session.content
    allow_download = content.allows_download
    documents = content.documents
    nav = ""

    tree = content.folder_tree
    if tree is not None:
        current = folder_id if folder_id and tree.contains(folder_id) else tree.root.id
        documents = tree.documents_for_folder(current)
        crumbs = " / ".join(
            f'<a href="/s/{_e(session.token)}?folder={_e(f.id)}">{_e(f.name)}</a>' for f in tree.breadcrumbs(current)
        )
        subfolders = "".join(
            f'<a href="/s/{_e(session.token)}?folder={_e(f.id)}">📁 {_e(f.name)} ({tree.document_count(f.id)})</a>'
            for f in tree.children(current)
        )
        nav = f'<p class="crumbs">{crumbs}</p>{subfolders}'
        folder_id = current

    selected = next((d for d in documents if d.id == content.selected_document_id), None)
    if selected is None and documents:
        selected = documents[0]

    heading = content.bundle_name or (tree.root.name if tree is not None else None) or content.link_name or "Shared content"
    listing = "".join(_doc_link(session, d, selected is not None and d.id == selected.id, folder_id) for d in documents)
    stage = _render_stage(selected, allow_download) if selected else "<p>This folder is empty.</p>"
    views = f"{content.current_views} of {content.max_views} views" if content.max_views else ""
    expires = f"Expires {content.expires_at.isoformat()}" if content.expires_at else ""
    footer = " · ".join(x for x in (views, expires) if x)

    body = f"""    <div class="card">
      <h1>{_e(heading)}</h1>
      <p class="meta">{_e(footer)}</p>
      <div class="layout">
        <div class="docs">{nav}{listing}</div>
{stage}
      </div>
    </div>"""
    return _page(heading, body, protected=not allow_download)


_RENDERERS = {
    GateState.CHECKING: _render_checking,
    GateState.PASSWORD_REQUIRED: _render_password,
    GateState.VIEWER_INFO_REQUIRED: _render_viewer_info,
    GateState.NDA_REQUIRED: _render_nda,
}


def render_session(session: GateSession, request: Request, folder_id: str | None = None) -> str:
    if session.is_terminal:
        return _render_terminal(session, request)
    if session.state == GateState.GRANTED:
        return _render_granted(session, request, folder_id)
    return _RENDERERS[session.state](session, request)


# -----------------------------
# Public viewer page for a share token
# -----------------------------

@router.get("/s/{token}", response_class=HTMLResponse)
async def viewer_page(
    token: str,
    request: Request,
    document: str | None = Query(None),
    folder: str | None = Query(None),
    gate: AccessGate = Depends(get_gate),
):
    session = gate_session_for(request, Response(), token)
    await gate.open(session, selected_document_id=document)

    status_code = 200
    if session.is_terminal and session.error is not None:
        status_code = session.error.status_code

    page = HTMLResponse(
        render_session(session, request, folder),
        status_code=status_code,
        headers={"Cache-Control": "no-store", "X-Robots-Tag": "noindex"},
    )
    set_session_cookie(page, session.session_id)
    return page
