"""Tests for platform providers against a mocked HTTP transport."""

import json
from io import BytesIO

import httpx
import pytest
from PIL import Image

from suppliercanvas.errors import InvalidSearchRequest, UpstreamFetchError, UpstreamParseError
from suppliercanvas.search_providers.alibaba import AlibabaProvider
from suppliercanvas.search_providers.base import ImageUpload, PlatformType
from suppliercanvas.search_providers.madeinchina import MadeInChinaProvider, keyword_segment, reencode_jpeg


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def png_bytes(width: int = 10, height: int = 20) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 10, 10)).save(buf, format="PNG")
    return buf.getvalue()


def refuse(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request {request.url}")


ALIBABA_OFFER = {
    "id": "1600",
    "title": "Modern Fabric Sofa",
    "price": "US$120.00",
    "companyId": "222",
    "companyName": "Foshan Furniture Co",
}


def alibaba_search_page(offers, total) -> str:
    payload = json.dumps({"offerResultData": {"offers": offers, "totalCount": total}})
    return f"<html><script>window.__page__data_sse10._offer_list = {payload};</script></html>"


@pytest.mark.asyncio
async def test_alibaba_text_search():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, text=alibaba_search_page([ALIBABA_OFFER], 100))

    async with mock_client(handler) as client:
        res = await AlibabaProvider(client=client).search_text(" sofa ", page=2)

    assert seen["path"] == "/trade/search"
    assert seen["params"]["keywords"] == "sofa"
    assert seen["params"]["page"] == "2"
    assert res.page == 2
    assert res.total_count == 100
    assert res.has_more is True
    assert [p.id for p in res.unified_products] == ["alibaba-1600"]
    assert res.unified_products[0].platform == PlatformType.ALIBABA


@pytest.mark.asyncio
async def test_alibaba_text_search_keeps_page_with_loosely_typed_offer():
    loose = {"id": "1700", "mainImage": {"url": "//x/a.jpg"}, "multiImage": [{}], "city": 5, "productUrl": 12345}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=alibaba_search_page([loose, ALIBABA_OFFER], 2))

    async with mock_client(handler) as client:
        res = await AlibabaProvider(client=client).search_text("sofa")

    assert [p.id for p in res.unified_products] == ["alibaba-1700", "alibaba-1600"]
    assert res.unified_products[0].image == ""


@pytest.mark.asyncio
async def test_alibaba_blank_query_makes_no_request():
    async with mock_client(refuse) as client:
        res = await AlibabaProvider(client=client).search_text("   ")
    assert res.unified_products == []
    assert res.has_more is False


@pytest.mark.asyncio
async def test_alibaba_http_error_raises_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    async with mock_client(handler) as client:
        with pytest.raises(UpstreamFetchError) as exc:
            await AlibabaProvider(client=client).search_text("sofa")
    assert exc.value.status == 503
    assert exc.value.platform == "alibaba"


@pytest.mark.asyncio
async def test_alibaba_transport_error_raises_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(UpstreamFetchError):
            await AlibabaProvider(client=client).search_text("sofa")


@pytest.mark.asyncio
async def test_alibaba_image_search_uploads_then_searches():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/imageTextSearchRegions"):
            return httpx.Response(
                200,
                json={"success": True, "model": {"imagePath": "/img/abc.jpg", "regions": [{"x": 1}, {"x": 2}]}},
            )
        return httpx.Response(200, json={"model": {"offers": [ALIBABA_OFFER], "totalCount": 1}})

    async with mock_client(handler) as client:
        res = await AlibabaProvider(client=client).search_image(ImageUpload(data=b"raw-jpeg", content_type="image/jpeg"))

    upload, search = requests
    assert upload.method == "POST"
    assert b'name="pictureBase"' in upload.content
    assert b"data:image/jpeg;base64,cmF3LWpwZWc=" in upload.content
    assert search.method == "GET"
    assert search.url.params["imagePath"] == "/img/abc.jpg"
    assert json.loads(search.url.params["regions"]) == [{"x": 1}, {"x": 2}]
    assert [p.id for p in res.unified_products] == ["alibaba-1600"]
    assert res.has_more is False


@pytest.mark.asyncio
async def test_alibaba_image_search_failed_upload():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"success": False})

    async with mock_client(handler) as client:
        with pytest.raises(UpstreamParseError):
            await AlibabaProvider(client=client).search_image(ImageUpload(data=b"raw"))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_alibaba_supplier_search():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "model": {
                    "offers": [
                        {"companyId": "777", "companyName": "Ningbo Lamps", "productList": [{"productId": "1", "subject": "Lamp"}]},
                        {"companyName": "No id"},
                    ],
                    "totalCount": 45,
                }
            },
        )

    async with mock_client(handler) as client:
        res = await AlibabaProvider(client=client).search_suppliers("desk lamp")

    assert seen["params"]["query"] == "desk lamp"
    assert seen["params"]["productQpKeywords"] == "desk lamp"
    assert seen["params"]["pageSize"] == "20"
    assert seen["params"]["requestId"].startswith("AI_Web_")
    assert [s.id for s in res.suppliers] == ["alibaba-777"]
    assert res.total_count == 45
    assert res.has_more is True


MIC_SEARCH_HTML = """
<div data-total="80"></div>
<div class="list-node">
  <h2 class="product-name"><a href="//bright.en.made-in-china.com/product/QwE123/China-LED-Panel.html">LED Panel</a></h2>
  <div class="price">US$ 3.20</div>
  <div class="company-name-txt"><a href="//bright.en.made-in-china.com">Bright Lighting</a></div>
</div>
"""

MIC_IMAGE_HTML = """
<div class="products-item">
  <div class="product-name"><a href="//www.made-in-china.com/showroom/x/Desk-Lamp-Zz9.html">Desk Lamp</a></div>
  <div class="price">US$ 8.00</div>
</div>
"""


def test_keyword_segment():
    assert keyword_segment("  white   sofa ") == "white+sofa"
    assert keyword_segment("café table") == "caf%C3%A9+table"


def test_reencode_jpeg():
    jpeg, width, height = reencode_jpeg(png_bytes(10, 20))
    assert jpeg[:2] == b"\xff\xd8"
    assert (width, height) == (10, 20)

    with pytest.raises(InvalidSearchRequest):
        reencode_jpeg(b"definitely not an image")


@pytest.mark.asyncio
async def test_mic_text_search():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, text=MIC_SEARCH_HTML)

    async with mock_client(handler) as client:
        res = await MadeInChinaProvider(client=client).search_text("led panel", page=2)

    assert seen["url"] == "https://www.made-in-china.com/multi-search/led+panel/F1/2.html"
    assert res.total_count == 80
    assert res.has_more is True
    product = res.unified_products[0]
    assert product.id == "madeinchina-QwE123"
    assert product.supplier.id == "bright"
    assert product.currency == "USD"


@pytest.mark.asyncio
async def test_mic_blank_query_makes_no_request():
    async with mock_client(refuse) as client:
        res = await MadeInChinaProvider(client=client).search_text("")
    assert res.unified_products == []
    assert res.total_count == 0
    assert res.has_more is False


@pytest.mark.asyncio
async def test_mic_image_search_first_page():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "file.made-in-china.com":
            return httpx.Response(200, json={"data": {"url": "https://www.made-in-china.com/img-search/result/abc123.html"}})
        return httpx.Response(200, text=MIC_IMAGE_HTML)

    async with mock_client(handler) as client:
        res = await MadeInChinaProvider(client=client).search_image(ImageUpload(data=png_bytes(10, 20), content_type="image/png"))

    upload, page = requests
    assert upload.url.path == "/img-search/upload"
    assert b'name="multipartFile"' in upload.content
    assert b'name="orgwidth"\r\n\r\n10' in upload.content
    assert b'name="orgheight"\r\n\r\n20' in upload.content
    assert str(page.url) == "https://www.made-in-china.com/img-search/result/abc123.html"
    assert [p.title for p in res.unified_products] == ["Desk Lamp"]
    assert res.total_count is None
    assert res.has_more is False


@pytest.mark.asyncio
async def test_mic_image_search_later_pages_use_ajax():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "file.made-in-china.com":
            return httpx.Response(200, json={"data": {"url": "https://www.made-in-china.com/img-search/result/abc123.html"}})
        return httpx.Response(200, text=MIC_IMAGE_HTML)

    async with mock_client(handler) as client:
        await MadeInChinaProvider(client=client).search_image(ImageUpload(data=png_bytes()), page=3)

    ajax = requests[1]
    assert ajax.url.path == "/img-search/ajax/abc123"
    assert ajax.url.params["page"] == "3"
    assert ajax.headers["X-Requested-With"] == "XMLHttpRequest"


@pytest.mark.asyncio
async def test_mic_image_search_rejects_undecodable_image():
    async with mock_client(refuse) as client:
        with pytest.raises(InvalidSearchRequest):
            await MadeInChinaProvider(client=client).search_image(ImageUpload(data=b"not an image"))


@pytest.mark.asyncio
async def test_mic_image_search_without_result_url():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {}})

    async with mock_client(handler) as client:
        with pytest.raises(UpstreamParseError):
            await MadeInChinaProvider(client=client).search_image(ImageUpload(data=png_bytes()))


@pytest.mark.asyncio
async def test_mic_supplier_search():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(
            200,
            text="""
            <div class="list-node">
              <h2 class="company-name"><a href="//bright.en.made-in-china.com" ads-data="pcid:AbC9">Bright Lighting</a></h2>
            </div>
            """,
        )

    async with mock_client(handler) as client:
        res = await MadeInChinaProvider(client=client).search_suppliers("panel light")

    assert seen["url"] == "https://www.made-in-china.com/company-search/panel+light/C1/1.html"
    assert [s.id for s in res.suppliers] == ["madeinchina-AbC9"]
    assert res.total_count is None
    assert res.has_more is False
