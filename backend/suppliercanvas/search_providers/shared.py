"""
Shared helpers for provider modules: HTTP client pool, fetch wrappers, URL/image helpers.
"""

import asyncio
import json
import logging
import re
import time
from html import unescape
from typing import Any, Iterable, List, Optional
from urllib.parse import urlsplit

import httpx

from suppliercanvas.config import settings
from suppliercanvas.errors import UpstreamFetchError, UpstreamParseError
from suppliercanvas.mappers.common import UNTITLED_PRODUCT, normalize_url
from suppliercanvas.search_providers.base import UnifiedProduct


logger = logging.getLogger("uvicorn.error")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HTTP_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
    # В httpx brotli (br) декодируется только при установленном brotli/brotlicffi.
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}

PLACEHOLDER_IMAGE_MARKERS = ("space.png", "transparent.png", "blank.gif", "loading.gif", "grey.gif")

_HTTP_CLIENTS: dict[str, httpx.AsyncClient] = {}
_HTTP_CLIENT_LOCK = asyncio.Lock()
_PROXY_WARNED = False


async def init_http_client() -> None:
    await get_http_client(http_proxy_url())


async def close_http_client() -> None:
    global _HTTP_CLIENTS
    clients = list(_HTTP_CLIENTS.values())
    _HTTP_CLIENTS = {}
    for client in clients:
        try:
            await client.aclose()
        except Exception as e:
            logger.warning("HTTPX: close failed: %s: %s", type(e).__name__, e)


async def get_http_client(proxy_url: Optional[str] = None) -> httpx.AsyncClient:
    key = normalize_proxy_url(proxy_url or "")
    if key in _HTTP_CLIENTS:
        return _HTTP_CLIENTS[key]
    async with _HTTP_CLIENT_LOCK:
        if key in _HTTP_CLIENTS:
            return _HTTP_CLIENTS[key]
        proxy_norm = key or None
        if proxy_norm:
            logger.info("HTTPX: proxy enabled %s", proxy_brief(proxy_norm))
        client = httpx.AsyncClient(
            headers=HTTP_HEADERS,
            follow_redirects=True,
            proxy=proxy_norm,
            timeout=settings.search_timeout_seconds,
            transport=httpx.AsyncHTTPTransport(retries=2),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        _HTTP_CLIENTS[key] = client
        return client


def http_proxy_url() -> Optional[str]:
    global _PROXY_WARNED
    full = (settings.http_proxy_url or "").strip()
    if full:
        return normalize_proxy_url(full)
    parts = [settings.proxy_domain, settings.proxy_port, settings.proxy_username, settings.proxy_password]
    parts = [(p or "").strip() for p in parts]
    if all(parts):
        domain, port, username, password = parts
        return f"http://{username}:{password}@{domain}:{port}"
    if any(parts) and not _PROXY_WARNED:
        _PROXY_WARNED = True
        logger.warning("Proxy configuration incomplete, requests will be made directly")
    return None


def normalize_proxy_url(proxy_url: str) -> str:
    u = (proxy_url or "").strip()
    if not u:
        return ""
    try:
        p = urlsplit(u)
        host = p.hostname
        port = p.port
        if not host or not port:
            return u
        scheme = (p.scheme or "http").lower()
        if scheme == "https":
            scheme = "http"
        auth = ""
        if p.username:
            auth = p.username
            if p.password:
                auth += f":{p.password}"
            auth += "@"
        return f"{scheme}://{auth}{host}:{port}"
    except ValueError:
        return u


def proxy_brief(proxy_url: str) -> str:
    u = (proxy_url or "").strip()
    if not u:
        return ""
    try:
        p = urlsplit(u)
        host = p.hostname or ""
        port = p.port or 0
    except ValueError:
        return "<invalid>"
    if not host or not port:
        return "<invalid>"
    scheme = (p.scheme or "http").lower()
    auth = "auth" if (p.username or p.password) else "noauth"
    return f"{scheme}://{host}:{port} ({auth})"


def _httpx_decode(resp: httpx.Response) -> str:
    try:
        return resp.text or ""
    except (UnicodeDecodeError, LookupError):
        return (resp.content or b"").decode("utf-8", errors="ignore")


async def _send(
    platform: str,
    method: str,
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    **kwargs: Any,
) -> httpx.Response:
    client = client or await get_http_client(http_proxy_url())
    kwargs.setdefault("timeout", settings.search_timeout_seconds)
    t0 = time.monotonic()
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error("%s: httpx failed: %s: %s", platform, type(e).__name__, e)
        raise UpstreamFetchError(platform, f"{type(e).__name__}: {e}") from e
    status = int(resp.status_code or 0)
    logger.info(
        "%s: %s status=%s in %.2fs (ct=%r, bytes=%s)",
        platform,
        method,
        status,
        time.monotonic() - t0,
        resp.headers.get("content-type"),
        len(resp.content or b""),
    )
    if not resp.is_success:
        raise UpstreamFetchError(platform, f"{method} {url} responded with status {status}", status=status)
    return resp


async def fetch_text(
    platform: str,
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> str:
    resp = await _send(platform, "GET", url, client=client, params=params, headers=headers)
    return _httpx_decode(resp)


def _decode_json(platform: str, resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UpstreamParseError(platform, f"invalid JSON from {resp.request.url}: {e}") from e


async def fetch_json(
    platform: str,
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> Any:
    resp = await _send(platform, "GET", url, client=client, params=params, headers=headers)
    return _decode_json(platform, resp)


async def post_json(
    platform: str,
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    json_body: Optional[dict] = None,
    data: Optional[dict] = None,
    files: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> Any:
    resp = await _send(
        platform,
        "POST",
        url,
        client=client,
        json=json_body,
        data=data,
        files=files,
        headers=headers,
    )
    return _decode_json(platform, resp)


def is_placeholder_image(url: Optional[str]) -> bool:
    u = (url or "").strip().lower()
    if not u or u.startswith("data:"):
        return True
    return any(marker in u for marker in PLACEHOLDER_IMAGE_MARKERS)


def img_url(img, base: str) -> str:
    if not img:
        return ""
    lazy = img.get("data-original") or img.get("data-src") or img.get("data-lazy") or ""
    src = img.get("src") or ""
    if lazy and not is_placeholder_image(lazy):
        return normalize_url(lazy, base)
    if src and not is_placeholder_image(src):
        return normalize_url(src, base)
    srcset = (img.get("srcset") or "").split()
    if srcset:
        return normalize_url(srcset[0], base)
    return ""


def unique(values: Iterable[Any]) -> List[str]:
    out: List[str] = []
    seen = set()
    for v in values:
        if not isinstance(v, str) or not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def clean_text(text: Optional[str]) -> str:
    t = unescape(text or "")
    t = t.replace(" ", " ")
    t = re.sub(r"[​‌‍‎‏⁠]", "", t)
    return re.sub(r"\s+", " ", t).strip()


def log_mapping_defects(platform: str, products: List[UnifiedProduct]) -> int:
    """
    Маппер не бросает исключений: «пустые» карточки (нет ни названия, ни цены, ни картинки, ни ссылки)
    только логируем, чтобы видеть деградацию разметки.
    """
    defects = 0
    for p in products:
        has_title = bool(p.title) and p.title != UNTITLED_PRODUCT
        if has_title or p.price or p.image or p.product_url:
            continue
        defects += 1
        logger.warning("%s: mapped product %s has no title/price/image/url", platform, p.id)
    return defects
