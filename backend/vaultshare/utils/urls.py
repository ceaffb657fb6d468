import urllib.parse

from fastapi import Request

from vaultshare.core.config import settings


def _parse_forwarded(value: str) -> tuple[str | None, str | None]:
    # only the first hop of an RFC 7239 Forwarded header is relevant
    proto = host = None
    for part in value.split(",")[0].split(";"):
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        k = k.strip().lower()
        v = v.strip().strip('"')
        if k == "proto":
            proto = v
        elif k == "host":
            host = v
    return proto, host


def external_base_url(request: Request) -> str:
    if settings.PUBLIC_BASE_URL:
        return settings.PUBLIC_BASE_URL.rstrip("/")

    fwd = request.headers.get("forwarded")
    if fwd:
        proto, host = _parse_forwarded(fwd)
        if proto and host:
            return f"{proto}://{host}".rstrip("/")

    proto = request.headers.get("x-forwarded-proto")
    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if proto and host:
        return f"{proto}://{host}".rstrip("/")

    return str(request.base_url).rstrip("/")


def build_external_url(request: Request, path: str) -> str:
    base = external_base_url(request)
    if not path.startswith("/"):
        path = "/" + path
    return base + path


def link_url(request: Request, token: str, suffix: str = "") -> str:
    """Public URL under ``/links/{token}`` with the token safely quoted."""
    return build_external_url(request, f"/links/{urllib.parse.quote(token, safe='')}{suffix}")
