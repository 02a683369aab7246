from typing import Any, List, Optional

from suppliercanvas.mappers.common import (
    UNTITLED_PRODUCT,
    detect_currency,
    first_str,
    format_location,
    normalize_url,
    random_token,
    text_or_none,
)
from suppliercanvas.search_providers.base import PlatformType, SupplierRef, UnifiedProduct, UnifiedSupplier
from suppliercanvas.search_providers.shared import unique


BASE_URL = "https://www.alibaba.com"
PLATFORM = PlatformType.ALIBABA

# Поля оффера, которые уходят в platform_specific у поставщика (для фильтров и карточки).
_SUPPLIER_SPECIFIC_FIELDS = (
    "verifiedSupplier",
    "verifiedSupplierPro",
    "isFactory",
    "reviewScore",
    "reviewCount",
    "reviewLink",
    "onTimeDelivery",
    "replyAvgTime",
    "reorderRate",
    "onlineRevenue",
    "goldYears",
    "goldYearsNumber",
    "mainProducts",
    "contactSupplier",
    "tmlid",
    "chatToken",
    "adInfo",
    "productList",
)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _ad_main_product(offer: dict) -> dict:
    creative = _as_dict(_as_dict(offer.get("adInfo")).get("creativeInfo"))
    main = creative.get("mainProduct")
    if isinstance(main, list):
        main = main[0] if main else None
    return main if isinstance(main, dict) else {}


def build_badges(offer: dict) -> List[str]:
    badges: List[str] = []
    if offer.get("verifiedSupplier"):
        badges.append("Verified Supplier")
    if offer.get("verifiedSupplierPro"):
        badges.append("Verified Supplier Pro")
    if offer.get("isFactory"):
        badges.append("Factory")
    if offer.get("goldYears"):
        badges.append(f"Gold {offer['goldYears']}")
    if offer.get("goldSupplierYears"):
        badges.append(str(offer["goldSupplierYears"]))
    if offer.get("tradeProduct"):
        badges.append("Trade Assurance")
    return unique(badges)


def map_offer_to_product(offer: dict) -> UnifiedProduct:
    """Оффер из выдачи товаров (текст или картинка) -> UnifiedProduct. Не бросает."""
    ad_product = _ad_main_product(offer)
    supplier_info = _as_dict(offer.get("supplier"))

    raw_id = text_or_none(offer.get("id") or offer.get("productId") or ad_product.get("id"))
    title = first_str(
        offer.get("title"),
        _as_dict(offer.get("adInfo")).get("adTitleText"),
        _as_dict(_as_dict(offer.get("adInfo")).get("creativeInfo")).get("adTitleText"),
    )
    price = text_or_none(offer.get("price") or offer.get("promotionPrice") or ad_product.get("price"))
    image = normalize_url(
        first_str(offer.get("mainImage"), offer.get("imageUrl"), ad_product.get("imageUrl"), ad_product.get("productImg")),
        BASE_URL,
    )
    multi = offer.get("multiImage") if isinstance(offer.get("multiImage"), list) else []
    images = unique([normalize_url(u, BASE_URL) for u in multi if isinstance(u, str)] or [image])

    product_url = normalize_url(
        first_str(
            offer.get("productUrl"),
            offer.get("url"),
            offer.get("clickEurl"),
            offer.get("eurl"),
            ad_product.get("action"),
        ),
        BASE_URL,
    )

    attributes = {}
    if offer.get("reviewScore"):
        attributes["Review Score"] = str(offer["reviewScore"])
    if offer.get("reviewCount"):
        attributes["Review Count"] = str(offer["reviewCount"])

    supplier = SupplierRef(
        id=text_or_none(offer.get("companyId") or supplier_info.get("companyId")) or "",
        name=first_str(offer.get("companyName"), supplier_info.get("companyName")) or "",
        url=normalize_url(
            first_str(offer.get("supplierHref"), offer.get("supplierHomeHref"), offer.get("contactSupplier")),
            BASE_URL,
        ),
        location=format_location(offer.get("city"), offer.get("countryCode")),
        badges=build_badges(offer),
    )

    return UnifiedProduct(
        id=f"{PLATFORM.value}-{raw_id or random_token()}",
        platform=PLATFORM,
        title=title or UNTITLED_PRODUCT,
        image=image or (images[0] if images else ""),
        images=images,
        price=price,
        currency=detect_currency(price),
        moq=text_or_none(offer.get("moq") or offer.get("moqV2")),
        product_url=product_url,
        attributes=attributes,
        supplier=supplier,
        platform_specific=dict(offer),
    )


def _map_sub_product(product: dict, supplier: SupplierRef) -> UnifiedProduct:
    image = normalize_url(product.get("productImg"), BASE_URL)
    price = text_or_none(product.get("price"))
    raw_id = text_or_none(product.get("productId"))
    return UnifiedProduct(
        id=f"{PLATFORM.value}-{raw_id or random_token()}",
        platform=PLATFORM,
        title=first_str(product.get("subject"), product.get("productTitle")) or UNTITLED_PRODUCT,
        image=image,
        images=[image] if image else [],
        price=price,
        currency=detect_currency(price),
        moq=text_or_none(product.get("moq")),
        product_url=normalize_url(product.get("action"), BASE_URL),
        attributes={},
        supplier=supplier,
        platform_specific=dict(product),
    )


def map_offer_to_supplier(offer: dict) -> Optional[UnifiedSupplier]:
    """
    Оффер из поиска поставщиков. Без companyId поставщика не собрать, такие офферы пропускаем.
    """
    company_id = text_or_none(offer.get("companyId"))
    if not company_id:
        return None

    product_list = [p for p in (offer.get("productList") or []) if isinstance(p, dict)]
    primary = product_list[0] if product_list else {}
    name = first_str(offer.get("companyName")) or f"Alibaba Supplier {company_id}"
    badges = build_badges(offer)
    location = format_location(offer.get("city"), offer.get("countryCode"))
    company_images = offer.get("companyImage") if isinstance(offer.get("companyImage"), list) else []
    images = unique(
        normalize_url(u, BASE_URL) for u in [offer.get("companyIcon"), *company_images, primary.get("productImg")]
    )

    supplier_ref = SupplierRef(
        id=company_id,
        name=name,
        url=normalize_url(offer.get("action"), BASE_URL),
        location=location,
        badges=badges,
    )
    price = text_or_none(primary.get("price"))

    return UnifiedSupplier(
        id=f"{PLATFORM.value}-{company_id}",
        platform=PLATFORM,
        name=name,
        url=normalize_url(first_str(primary.get("action"), offer.get("action")), BASE_URL) or BASE_URL,
        location=location,
        badges=badges,
        price=price,
        currency=detect_currency(price),
        moq=text_or_none(primary.get("moq")),
        images=images,
        products=[_map_sub_product(p, supplier_ref) for p in product_list],
        matched_input_ids=[],
        platform_specific={k: offer.get(k) for k in _SUPPLIER_SPECIFIC_FIELDS if k in offer},
    )


def map_offers_to_suppliers(offers: List[Any]) -> List[UnifiedSupplier]:
    out: List[UnifiedSupplier] = []
    for offer in offers:
        if not isinstance(offer, dict):
            continue
        supplier = map_offer_to_supplier(offer)
        if supplier is not None:
            out.append(supplier)
    return out
