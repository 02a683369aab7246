"""Tests for currency detection and platform mappers."""

import logging

import pytest

from suppliercanvas.mappers.alibaba import build_badges, map_offer_to_product, map_offers_to_suppliers
from suppliercanvas.mappers.common import detect_currency, first_str, format_location, normalize_url
from suppliercanvas.mappers.madeinchina import (
    extract_company_id,
    extract_product_id,
    map_companies_to_suppliers,
    map_listing_to_product,
)
from suppliercanvas.parsers.madeinchina import MicCompany, MicProductSummary
from suppliercanvas.search_providers.base import PlatformType
from suppliercanvas.search_providers.shared import log_mapping_defects, unique


@pytest.mark.parametrize(
    "price, expected",
    [
        ("US$ 1.50-2.00", "USD"),
        ("us$3", "USD"),
        ("USD 4", "USD"),
        ("$12.00", "USD"),
        ("HK$5", "HKD"),
        ("SG$5", "SGD"),
        ("AU$5", "AUD"),
        ("CA$5", "CAD"),
        ("€2,50", "EUR"),
        ("GBP 3", "GBP"),
        ("₹100", "INR"),
        ("¥10", "CNY"),
        ("RMB 10", "CNY"),
        ("1.50", None),
        ("", None),
        (None, None),
    ],
)
def test_detect_currency(price, expected):
    assert detect_currency(price) == expected


def test_detect_currency_is_deterministic():
    assert {detect_currency("HK$ 12") for _ in range(5)} == {"HKD"}


def test_format_location():
    assert format_location("Foshan", "CN") == "Foshan, CN"
    assert format_location("", "Guangdong") == "Guangdong"
    assert format_location(None, None) is None


def test_normalize_url():
    assert normalize_url("//s.alicdn.com/a.jpg") == "https://s.alicdn.com/a.jpg"
    assert normalize_url("/p/1.html", "https://www.made-in-china.com") == "https://www.made-in-china.com/p/1.html"
    assert normalize_url("javascript:void(0)") == ""
    assert normalize_url(None) == ""


ALIBABA_OFFER = {
    "id": "1600",
    "title": "Modern Fabric Sofa",
    "price": "US$120.00-150.00",
    "mainImage": "//s.alicdn.com/a.jpg",
    "multiImage": ["//s.alicdn.com/a.jpg", "//s.alicdn.com/b.jpg"],
    "productUrl": "//www.alibaba.com/product-detail/sofa_1600.html",
    "companyId": "222",
    "companyName": "Foshan Furniture Co",
    "city": "Foshan",
    "countryCode": "CN",
    "verifiedSupplier": True,
    "goldYears": "5 YRS",
    "moq": "2 pieces",
    "reviewScore": "4.8",
}


def test_map_alibaba_offer_to_product():
    product = map_offer_to_product(ALIBABA_OFFER)

    assert product.id == "alibaba-1600"
    assert product.platform == PlatformType.ALIBABA
    assert product.title == "Modern Fabric Sofa"
    assert product.price == "US$120.00-150.00"
    assert product.currency == "USD"
    assert product.moq == "2 pieces"
    assert product.image == "https://s.alicdn.com/a.jpg"
    assert product.images == ["https://s.alicdn.com/a.jpg", "https://s.alicdn.com/b.jpg"]
    assert product.product_url == "https://www.alibaba.com/product-detail/sofa_1600.html"
    assert product.attributes == {"Review Score": "4.8"}
    assert product.supplier.id == "222"
    assert product.supplier.name == "Foshan Furniture Co"
    assert product.supplier.location == "Foshan, CN"
    assert product.supplier.badges == ["Verified Supplier", "Gold 5 YRS"]
    assert product.platform_specific["companyId"] == "222"


def test_map_alibaba_offer_with_missing_fields():
    """Missing fields degrade to defaults instead of raising."""
    product = map_offer_to_product({"adInfo": "not-a-dict"})

    assert product.id.startswith("alibaba-")
    assert len(product.id) > len("alibaba-")
    assert product.title == "Untitled Product"
    assert product.price is None
    assert product.currency is None
    assert product.supplier.id == ""
    assert product.supplier.name == ""


def test_build_badges_dedupes():
    badges = build_badges({"verifiedSupplier": True, "isFactory": True, "tradeProduct": True, "goldSupplierYears": "Factory"})
    assert badges == ["Verified Supplier", "Factory", "Trade Assurance"]


def test_map_alibaba_offers_to_suppliers():
    offers = [
        {"companyName": "No Id Ltd"},
        {
            "companyId": "777",
            "companyName": "Ningbo Lamps",
            "action": "//ningbolamps.en.alibaba.com",
            "companyIcon": "//s.alicdn.com/logo.png",
            "city": "Ningbo",
            "countryCode": "CN",
            "isFactory": True,
            "reviewScore": "4.9",
            "productList": [
                {"productId": "1", "subject": "Desk Lamp", "price": "$5.00", "moq": "100 pieces", "productImg": "//s.alicdn.com/1.jpg"},
                {"productId": "2", "subject": "Floor Lamp", "price": "$9.00"},
            ],
        },
        "garbage",
    ]

    suppliers = map_offers_to_suppliers(offers)

    assert len(suppliers) == 1
    s = suppliers[0]
    assert s.id == "alibaba-777"
    assert s.name == "Ningbo Lamps"
    assert s.price == "$5.00"
    assert s.currency == "USD"
    assert s.moq == "100 pieces"
    assert s.badges == ["Factory"]
    assert s.images == ["https://s.alicdn.com/logo.png", "https://s.alicdn.com/1.jpg"]
    assert [p.id for p in s.products] == ["alibaba-1", "alibaba-2"]
    assert all(p.supplier.id == "777" for p in s.products)
    assert s.platform_specific["reviewScore"] == "4.9"


def test_extract_mic_product_id():
    assert extract_product_id("https://www.made-in-china.com/showroom/acme/Modern-Sofa-AbC123.html") == "AbC123"
    assert extract_product_id("https://acme.en.made-in-china.com/product/XyZ987/China-Sofa.html") == "XyZ987"
    assert extract_product_id("https://www.made-in-china.com/").startswith("mic-")


def test_extract_mic_company_id():
    assert extract_company_id("https://acme.en.made-in-china.com", "Acme") == "acme"
    assert extract_company_id("https://www.made-in-china.com/company/x", "Foo Bar Ltd") == "foo-bar-ltd"
    assert extract_company_id("", "") == ""


def test_map_mic_listing_to_product():
    record = {
        "title": "LED Panel Light",
        "product_url": "https://bright.en.made-in-china.com/product/QwE123/China-LED-Panel.html",
        "image_url": "//image.made-in-china.com/1.jpg",
        "images": ["//image.made-in-china.com/1.jpg"],
        "price": "US$ 3.20",
        "moq": "500 Pieces",
        "company_name": "Bright Lighting Co., Ltd.",
        "company_url": "https://bright.en.made-in-china.com",
        "location": "Zhejiang, China",
        "attributes": {"Power": "18W"},
        "badges": ["Audited Supplier"],
    }

    product = map_listing_to_product(record)

    assert product.id == "madeinchina-QwE123"
    assert product.platform == PlatformType.MADEINCHINA
    assert product.currency == "USD"
    assert product.image == "https://image.made-in-china.com/1.jpg"
    assert product.supplier.id == "bright"
    assert product.supplier.badges == ["Audited Supplier"]
    assert product.attributes == {"Power": "18W"}
    assert product.platform_specific["isAuditedSupplier"] is True
    assert product.platform_specific["title"] == "LED Panel Light"


def test_map_mic_companies_to_suppliers():
    company = MicCompany(
        company_name="Bright Lighting Co., Ltd.",
        company_url="https://bright.en.made-in-china.com",
        company_id="abc123",
        city="Ningbo",
        province="Zhejiang",
        is_audited_supplier=True,
        capability_stars=4,
        certifications="ISO9001, CE",
        product_list=[MicProductSummary(name="Panel", url="https://bright.en.made-in-china.com/product/P1/China-Panel.html")],
    )
    skipped = MicCompany(company_name="Nameless", company_url="", company_id="")

    suppliers = map_companies_to_suppliers([company, skipped])

    assert len(suppliers) == 1
    s = suppliers[0]
    assert s.id == "madeinchina-abc123"
    assert s.location == "Ningbo, Zhejiang"
    assert s.badges == ["Audited Supplier", "4 Stars", "ISO9001", "CE"]
    assert [p.id for p in s.products] == ["madeinchina-P1"]
    assert s.products[0].platform_specific == {"isAuditedSupplier": True, "capabilityStars": 4}
    assert s.platform_specific["capabilityStars"] == 4


def test_detect_currency_reference_set():
    prices = ["US$12.50", "$12.50", "€9.00", "¥100", "12.50"]
    assert [detect_currency(p) for p in prices] == ["USD", "USD", "EUR", "CNY", None]


@pytest.mark.parametrize("value", [{"url": "//x/a.jpg"}, ["//x/a.jpg"], 12345, 1.5, True])
def test_url_and_location_helpers_ignore_non_strings(value):
    assert normalize_url(value) == ""
    assert format_location(value, value) is None
    assert format_location(value, "CN") == "CN"
    assert detect_currency(value) is None


def test_first_str_and_unique_skip_non_strings():
    assert first_str(None, {"u": 1}, 5, "  ", " //a.jpg ", "b") == "//a.jpg"
    assert first_str({}, []) is None
    assert unique([{"u": 1}, "a", ["a"], "a", 7, "", "b"]) == ["a", "b"]


@pytest.mark.parametrize(
    "extra",
    [
        {"mainImage": {"url": "//x/a.jpg"}},
        {"multiImage": [{"url": "//x/a.jpg"}]},
        {"city": 5, "countryCode": ["CN"]},
        {"productUrl": 12345},
        {"companyName": {"en": "Acme"}, "title": ["Sofa"]},
        {"supplierHref": {"href": "//acme.en.alibaba.com"}},
    ],
)
def test_map_alibaba_offer_with_loosely_typed_fields(extra):
    """Odd JSON types degrade to defaults; the offer still maps."""
    product = map_offer_to_product({"id": "1", "price": "$2.00", **extra})

    assert product.id == "alibaba-1"
    assert product.currency == "USD"
    assert all(isinstance(u, str) and u for u in product.images)
    assert isinstance(product.product_url, str)
    assert isinstance(product.supplier.name, str)


def test_map_alibaba_offer_keeps_string_image_after_bad_candidates():
    product = map_offer_to_product(
        {"id": "1", "mainImage": {"url": "x"}, "imageUrl": "//s.alicdn.com/a.jpg", "multiImage": [{"u": 1}, 3]}
    )

    assert product.image == "https://s.alicdn.com/a.jpg"
    assert product.images == ["https://s.alicdn.com/a.jpg"]


def test_map_alibaba_suppliers_with_loosely_typed_fields():
    offers = [
        {"companyId": "9", "companyImage": [{"u": 1}, "//s.alicdn.com/c.jpg"], "companyIcon": 7, "city": {"n": 1}},
        {"companyId": "10", "action": ["//b.example"], "productList": [{"productId": "1", "productImg": {"u": 1}}]},
    ]

    suppliers = map_offers_to_suppliers(offers)

    assert [s.id for s in suppliers] == ["alibaba-9", "alibaba-10"]
    assert suppliers[0].images == ["https://s.alicdn.com/c.jpg"]
    assert suppliers[0].location is None
    assert suppliers[1].url == "https://www.alibaba.com"
    assert suppliers[1].products[0].image == ""


def test_map_mic_listing_with_loosely_typed_fields():
    product = map_listing_to_product({"title": "Lamp", "image_url": {"src": "x"}, "images": [{"src": "x"}, None]})

    assert product.image == ""
    assert product.images == []
    assert product.id.startswith("madeinchina-")


def test_empty_offer_is_logged_as_mapping_defect(caplog):
    empty = map_offer_to_product({})
    filled = map_offer_to_product(ALIBABA_OFFER)

    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        defects = log_mapping_defects("alibaba", [empty, filled])

    assert defects == 1
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert empty.id in warnings[0].getMessage()
    assert "no title/price/image/url" in warnings[0].getMessage()
