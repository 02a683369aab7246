import re
from dataclasses import asdict
from typing import List, Optional
from urllib.parse import urlsplit

from suppliercanvas.mappers.common import (
    UNTITLED_PRODUCT,
    detect_currency,
    format_location,
    normalize_url,
    random_token,
    text_or_none,
)
from suppliercanvas.parsers.madeinchina import MicCompany
from suppliercanvas.search_providers.base import PlatformType, SupplierRef, UnifiedProduct, UnifiedSupplier
from suppliercanvas.search_providers.shared import unique


BASE_URL = "https://www.made-in-china.com"
PLATFORM = PlatformType.MADEINCHINA

# Ссылки на товар: .../product/AbCd123/Name.html (витрина) или .../Product-Name-AbCd123.html
_PRODUCT_ID_PATTERNS = (
    re.compile(r"/product/([^/]+)/"),
    re.compile(r"-([A-Za-z0-9]+)\.html$"),
)
# Поддомены, которые не являются идентификатором поставщика.
_SHARED_SUBDOMAINS = {"www", "en", "m"}


def extract_product_id(url: Optional[str]) -> str:
    u = (url or "").split("?", 1)[0]
    for pattern in _PRODUCT_ID_PATTERNS:
        m = pattern.search(u)
        if m:
            return m.group(1)
    return f"mic-{random_token()}"


def extract_company_id(url: Optional[str], name: Optional[str]) -> str:
    """
    Идентификатор поставщика берём из поддомена витрины (acme.en.made-in-china.com -> acme),
    иначе строим из названия. Пустая строка, если нет ни того, ни другого.
    """
    try:
        host = urlsplit((url or "").strip()).hostname or ""
    except ValueError:
        host = ""
    parts = host.split(".")
    if "made-in-china" in parts:
        idx = parts.index("made-in-china")
        for part in parts[:idx]:
            if part and part not in _SHARED_SUBDOMAINS:
                return part
    name = (name or "").strip()
    return re.sub(r"\s+", "-", name).lower() if name else ""


def build_badges(company: MicCompany) -> List[str]:
    badges: List[str] = []
    if company.is_audited_supplier:
        badges.append("Audited Supplier")
    if company.capability_stars:
        badges.append(f"{company.capability_stars} Stars")
    if company.certifications:
        badges.extend(c.strip() for c in re.split(r"[,|]", company.certifications) if c.strip())
    return unique(badges)


def map_listing_to_product(record: dict) -> UnifiedProduct:
    """Запись из parse_product_search / parse_image_search -> UnifiedProduct. Не бросает."""
    product_url = normalize_url(record.get("product_url"), BASE_URL)
    image = normalize_url(record.get("image_url"), BASE_URL)
    raw_images = record.get("images") if isinstance(record.get("images"), list) else []
    images = unique([normalize_url(u, BASE_URL) for u in raw_images if isinstance(u, str)] or [image])
    price = text_or_none(record.get("price"))
    company_url = normalize_url(record.get("company_url"), BASE_URL)
    company_name = text_or_none(record.get("company_name")) or ""
    badges = record.get("badges") or []

    return UnifiedProduct(
        id=f"{PLATFORM.value}-{extract_product_id(product_url)}",
        platform=PLATFORM,
        title=text_or_none(record.get("title")) or UNTITLED_PRODUCT,
        image=image or (images[0] if images else ""),
        images=images,
        price=price,
        currency=detect_currency(price),
        moq=text_or_none(record.get("moq")),
        product_url=product_url,
        attributes=dict(record.get("attributes") or {}),
        supplier=SupplierRef(
            id=extract_company_id(company_url, company_name),
            name=company_name,
            url=company_url,
            location=text_or_none(record.get("location")),
            badges=list(badges),
        ),
        platform_specific={
            **record,
            "isAuditedSupplier": "Audited Supplier" in badges,
        },
    )


def map_company_to_supplier(company: MicCompany) -> UnifiedSupplier:
    badges = build_badges(company)
    location = format_location(company.city, company.province)
    url = normalize_url(company.company_url, BASE_URL) or BASE_URL
    images = unique(
        normalize_url(u, BASE_URL)
        for u in [company.company_logo_url, *company.product_images, *(p.image for p in company.product_list)]
    )
    supplier_ref = SupplierRef(
        id=company.company_id,
        name=company.company_name,
        url=url,
        location=location,
        badges=badges,
    )

    products = [
        UnifiedProduct(
            id=f"{PLATFORM.value}-{extract_product_id(p.url)}",
            platform=PLATFORM,
            title=p.name,
            image=normalize_url(p.image, BASE_URL),
            images=[normalize_url(p.image, BASE_URL)] if p.image else [],
            price=None,
            currency=None,
            moq=None,
            product_url=normalize_url(p.url, BASE_URL),
            attributes={},
            supplier=supplier_ref,
            platform_specific={
                "isAuditedSupplier": company.is_audited_supplier,
                "capabilityStars": company.capability_stars,
            },
        )
        for p in company.product_list
    ]

    return UnifiedSupplier(
        id=f"{PLATFORM.value}-{company.company_id}",
        platform=PLATFORM,
        name=company.company_name,
        url=url,
        location=location,
        badges=badges,
        price=None,
        currency=None,
        moq=None,
        images=images,
        products=products,
        matched_input_ids=[],
        platform_specific={
            "businessType": company.business_type,
            "mainProducts": company.main_products,
            "inquiryUrl": company.inquiry_url,
            "chatId": company.chat_id,
            "isAuditedSupplier": company.is_audited_supplier,
            "capabilityStars": company.capability_stars,
            "productList": [asdict(p) for p in company.product_list],
            "productImages": company.product_images,
        },
    )


def map_companies_to_suppliers(companies: List[MicCompany]) -> List[UnifiedSupplier]:
    return [map_company_to_supplier(c) for c in companies if c.company_id]
