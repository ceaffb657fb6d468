from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio

from conftest import FakeSigner, hours_from_now, make_bundle, make_document, make_folder, make_link
from vaultshare.core.config import settings
from vaultshare.core.database import get_db
from vaultshare.dependencies import get_minio_signer, get_signer
from vaultshare.main import app
from vaultshare.services.access_gate import gate_sessions
from vaultshare.services.signer import SIGNER_KEY_HEADER, MinioSigner
from vaultshare.services.url_cache import url_cache

VIEWER = {"name": "Ada Lovelace", "email": "ada@example.com"}


@pytest.fixture
def route_signer():
    return FakeSigner()


@pytest_asyncio.fixture
async def client(session_factory, route_signer):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_signer] = lambda: route_signer
    gate_sessions.clear()
    url_cache.clear()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()
    gate_sessions.clear()
    url_cache.clear()


@pytest.mark.asyncio
async def test_open_plain_link_then_identify(db, client):
    doc = await make_document(db, "report.pdf")
    await make_link(db, token="plain", document=doc, link_name="Q3 report")

    r = await client.get("/links/plain")
    assert r.status_code == 200
    assert r.json()["state"] == "viewer_info_required"
    assert r.json()["content"] is None

    r = await client.post("/links/plain/viewer", json=VIEWER)
    body = r.json()
    assert r.status_code == 200
    assert body["state"] == "granted"
    assert body["viewer"] == VIEWER
    assert body["content"]["kind"] == "document"
    assert body["content"]["current_views"] == 1
    assert body["content"]["documents"][0]["signed_url"] == "https://storage.test/docs/report.pdf?sig=abc"

    r = await client.get("/links/plain/content")
    assert r.status_code == 200
    assert r.json()["link_name"] == "Q3 report"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token, link_kwargs, status, state",
    [
        ("missing", None, 404, "invalid"),
        ("rev", {"status": "revoked"}, 403, "revoked"),
        ("old", {"expires_at": hours_from_now(-2)}, 410, "expired"),
        ("full", {"max_views": 1, "current_views": 1}, 403, "max_views_exceeded"),
    ],
)
async def test_terminal_responses(db, client, token, link_kwargs, status, state):
    if link_kwargs is not None:
        doc = await make_document(db)
        await make_link(db, token=token, document=doc, **link_kwargs)

    r = await client.get(f"/links/{token}")

    assert r.status_code == status
    assert r.json()["state"] == state
    assert r.json()["terminal"] is True
    assert r.json()["error"]["fatal"] is True


@pytest.mark.asyncio
async def test_wrong_password_is_401_and_keeps_identity(db, client):
    doc = await make_document(db)
    await make_link(db, token="pw", document=doc, password="s3cret")
    await client.get("/links/pw")

    r = await client.post("/links/pw/password", json={"password": "nope", "viewer_name": "Ada", "viewer_email": "ada@example.com"})

    assert r.status_code == 401
    assert r.json()["state"] == "password_required"
    assert r.json()["message"] == "Incorrect password"
    assert r.json()["viewer"]["email"] == "ada@example.com"


@pytest.mark.asyncio
async def test_content_requires_completed_gate(db, client):
    doc = await make_document(db)
    await make_link(db, token="nda", document=doc, nda_required=True)
    await client.get("/links/nda")

    r = await client.get("/links/nda/content")
    assert r.status_code == 409

    await client.post("/links/nda/viewer", json=VIEWER)
    r = await client.get("/links/nda/content")
    assert r.status_code == 403
    assert r.json()["kind"] == "nda_not_signed"

    r = await client.post("/links/nda/nda", json={"signer_name": "Ada", "signer_email": "ada@example.com", "accepted": False})
    assert r.status_code == 400

    r = await client.post("/links/nda/nda", json={"signer_name": "Ada", "signer_email": "ada@example.com"})
    assert r.json()["state"] == "granted"
    assert (await client.get("/links/nda/content")).status_code == 200


@pytest.mark.asyncio
async def test_out_of_order_step_is_409(db, client):
    doc = await make_document(db)
    await make_link(db, token="seq", document=doc)

    r = await client.post("/links/seq/nda", json={"signer_name": "Ada", "signer_email": "ada@example.com"})

    assert r.status_code == 409
    assert r.json()["kind"] == "invalid_gate_state"


@pytest.mark.asyncio
async def test_invalid_email_rejected(db, client):
    doc = await make_document(db)
    await make_link(db, token="mail", document=doc)
    r = await client.post("/links/mail/viewer", json={"name": "Ada", "email": "not-an-email"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_bundle_document_selection(db, client):
    docs = [await make_document(db, f"part-{i}.pdf") for i in range(3)]
    bundle = await make_bundle(db, "Closing set", docs)
    await make_link(db, token="bun", bundle=bundle)

    await client.get(f"/links/bun?document={docs[1].id}")
    r = await client.post("/links/bun/viewer", json=VIEWER)
    assert r.json()["content"]["selected_document_id"] == docs[1].id
    assert r.json()["content"]["bundle_name"] == "Closing set"

    r = await client.get(f"/links/bun/content?document={docs[2].id}")
    assert r.json()["selected_document_id"] == docs[2].id
    assert (await client.get("/links/bun/content?document=nope")).status_code == 404


@pytest.mark.asyncio
async def test_folder_browsing(db, client):
    root = await make_folder(db, "Shared")
    sub = await make_folder(db, "Contracts", parent=root)
    await make_document(db, "overview.pdf", folder=root)
    await make_document(db, "lease.pdf", folder=sub)
    await make_document(db, "floorplan.png", file_type="image/png", folder=sub)
    await make_link(db, token="fold", folder=root)
    await client.get("/links/fold")
    await client.post("/links/fold/viewer", json=VIEWER)

    r = await client.get(f"/links/fold/folders/{root.id}")
    body = r.json()
    assert body["total"] == 3
    assert body["subfolders"] == [{"id": sub.id, "name": "Contracts", "parent_folder_id": root.id, "document_count": 2}]
    assert body["category_counts"]["image"] == 1

    r = await client.get(f"/links/fold/folders/{sub.id}", params={"category": "pdf", "view": "list"})
    body = r.json()
    assert [d["file_name"] for d in body["documents"]] == ["lease.pdf"]
    assert body["per_page"] == 20
    assert [c["name"] for c in body["breadcrumbs"]] == ["Shared", "Contracts"]

    r = await client.get(f"/links/fold/folders/{sub.id}", params={"q": "FLOOR"})
    assert [d["file_name"] for d in r.json()["documents"]] == ["floorplan.png"]

    assert (await client.get("/links/fold/folders/elsewhere")).status_code == 404
    assert (await client.get(f"/links/fold/folders/{root.id}", params={"sort": "random"})).status_code == 422


@pytest.mark.asyncio
async def test_view_only_page_suppresses_context_menu(db, client):
    doc = await make_document(db, "plan.pdf")
    await make_link(db, token="vo", document=doc, access_level="view_only")

    r = await client.get("/s/vo")
    assert r.status_code == 200
    assert "Before you continue" in r.text
    assert 'oncontextmenu="return false;"' not in r.text

    await client.post("/links/vo/viewer", json=VIEWER)
    r = await client.get("/s/vo")

    assert r.status_code == 200
    assert 'oncontextmenu="return false;"' in r.text
    assert "download=" not in r.text
    assert r.headers["cache-control"] == "no-store"


@pytest.mark.asyncio
async def test_download_page_offers_download(db, client):
    doc = await make_document(db, "plan.pdf")
    await make_link(db, token="dl", document=doc, access_level="download")
    await client.get("/s/dl")
    await client.post("/links/dl/viewer", json=VIEWER)

    r = await client.get("/s/dl")

    assert 'oncontextmenu="return false;"' not in r.text
    assert 'download="plan.pdf"' in r.text


@pytest.mark.asyncio
async def test_terminal_page_offers_retry_and_home(client):
    r = await client.get("/s/unknown-token")
    assert r.status_code == 404
    assert "Invalid Link" in r.text
    assert "Try again" in r.text
    assert "Go home" in r.text


@pytest.mark.asyncio
async def test_url_cache_shared_across_requests(db, client, route_signer):
    doc = await make_document(db)
    await make_link(db, token="cached", document=doc)

    await client.get("/links/cached")
    await client.get("/links/cached")

    assert len(route_signer.batch_calls) == 1


@pytest.fixture
def signer_headers(monkeypatch):
    monkeypatch.setattr(settings, "SIGNER_API_KEY", "shared-secret")
    return {SIGNER_KEY_HEADER: "shared-secret"}


def _minio_override(presign):
    minio = MagicMock()
    minio.presigned_get_object.side_effect = presign
    app.dependency_overrides[get_minio_signer] = lambda: MinioSigner(minio, bucket="vault")
    return minio


@pytest.mark.asyncio
async def test_signed_url_batch_endpoint(client, signer_headers):
    def presign(bucket, path, expires):
        if path == "missing.pdf":
            raise ValueError("no such key")
        return f"https://minio/{bucket}/{path}?ttl={int(expires.total_seconds())}"

    _minio_override(presign)
    r = await client.post("/signed-urls/batch", json={"requests": [
        {"storagePath": "docs/a.pdf", "isVideo": False, "expiresIn": 3600},
        {"storagePath": "missing.pdf", "isVideo": False, "expiresIn": 3600},
        {"storagePath": "media/b.mp4", "isVideo": True, "expiresIn": 600},
    ]}, headers=signer_headers)

    body = r.json()
    assert r.status_code == 200
    assert body["totalRequested"] == 3
    assert body["totalSuccess"] == 2
    assert body["signedUrls"][1] == {
        "storagePath": "media/b.mp4",
        "signedUrl": "https://minio/vault/media/b.mp4?ttl=600",
        "expiresIn": 600,
        "isVideo": True,
    }


@pytest.mark.asyncio
async def test_signed_url_single_endpoint(client, signer_headers):
    _minio_override(lambda bucket, path, expires: f"https://minio/{bucket}/{path}")

    r = await client.post("/signed-urls/single", json={"storagePath": "docs/a.pdf", "expiresIn": 120}, headers=signer_headers)
    assert r.json() == {"signedUrl": "https://minio/vault/docs/a.pdf", "expiresIn": 120}

    _minio_override(MagicMock(side_effect=ValueError("bad")))
    r = await client.post("/signed-urls/single", json={"storagePath": "docs/a.pdf", "expiresIn": 120}, headers=signer_headers)
    assert r.status_code == 502
    assert "error" in r.json()


@pytest.mark.asyncio
async def test_signed_url_endpoints_require_key(client, signer_headers):
    minio = _minio_override(lambda bucket, path, expires: f"https://minio/{bucket}/{path}")
    body = {"storagePath": "docs/board-minutes.pdf", "expiresIn": 86400}

    r = await client.post("/signed-urls/single", json=body)
    assert r.status_code == 401

    r = await client.post("/signed-urls/single", json=body, headers={SIGNER_KEY_HEADER: "guess"})
    assert r.status_code == 403

    r = await client.post("/signed-urls/batch", json={"requests": [body]})
    assert r.status_code == 401
    minio.presigned_get_object.assert_not_called()


@pytest.mark.asyncio
async def test_signed_url_endpoints_disabled_without_configured_key(client, monkeypatch):
    monkeypatch.setattr(settings, "SIGNER_API_KEY", "")
    _minio_override(lambda bucket, path, expires: "u")

    r = await client.post(
        "/signed-urls/single",
        json={"storagePath": "docs/a.pdf", "expiresIn": 60},
        headers={SIGNER_KEY_HEADER: ""},
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_revoked_link_stops_serving_granted_session(db, client):
    doc = await make_document(db, "report.pdf")
    link = await make_link(db, token="plain", document=doc)
    await client.get("/links/plain")
    await client.post("/links/plain/viewer", json=VIEWER)
    assert (await client.get("/links/plain/content")).status_code == 200

    link.status = "revoked"
    await db.commit()

    r = await client.get("/links/plain/content")
    assert r.status_code == 403
    assert r.json()["kind"] == "link_revoked"
    assert "storage.test" not in r.text


@pytest.mark.asyncio
async def test_expired_link_stops_folder_browsing(db, client):
    root = await make_folder(db, "Shared")
    await make_document(db, "overview.pdf", folder=root)
    link = await make_link(db, token="fold", folder=root, expires_at=hours_from_now(1))
    await client.get("/links/fold")
    await client.post("/links/fold/viewer", json=VIEWER)
    assert (await client.get(f"/links/fold/folders/{root.id}")).status_code == 200

    link.expires_at = hours_from_now(-1)
    await db.commit()

    r = await client.get(f"/links/fold/folders/{root.id}")
    assert r.status_code == 410
    assert r.json()["kind"] == "link_expired"
