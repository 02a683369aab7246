"""
Made-in-China: разбор HTML-выдачи.

Разметка отличается между видами страниц (поиск товаров, поиск по картинке, поиск компаний,
витрина поставщика, карточка товара), поэтому для каждого поля держим упорядоченный список
CSS-селекторов: берём первый, который дал непустой результат.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from suppliercanvas.mappers.common import normalize_url
from suppliercanvas.search_providers.shared import clean_text, img_url, unique


BASE_URL = "https://www.made-in-china.com"

# Стратегии подсчёта общего количества результатов: сначала data-атрибуты, потом текст.
TOTAL_COUNT_ATTRS: Sequence[str] = ("data-total", "data-result-total", "data-result-count")
TOTAL_COUNT_TEXT_SELECTORS: Sequence[str] = (".company-total, .result-number",)

LISTING_NODE_SELECTORS: Sequence[str] = (".list-node", ".J-list-node")
IMAGE_RESULT_NODE_SELECTORS: Sequence[str] = (".products-item", ".J-products-item")
STOREFRONT_NODE_SELECTORS: Sequence[str] = (".prod-result-item", ".J-prod-result-item")

COMPANY_LINK_SELECTORS: Sequence[str] = (
    ".company-name-txt .compnay-name",
    ".company-name-txt a",
    "h2.company-name a",
    ".company-name .compnay-name",
)
PRODUCT_LINK_SELECTORS: Sequence[str] = (".product-name a", "h2.product-name a", ".prod-title a")
LOCATION_SELECTORS: Sequence[str] = (
    ".company-address-info .tip-address .tip-para",
    ".company-address-detail",
)

# Данные о членстве поставщика встречаются как текстом, так и иконками.
_AUTH_TEXT_BADGES = ("Diamond Member", "Gold Member", "Audited Supplier")
_AUTH_ICON_BADGES = ((".tip-gold", "Gold Member"), (".tip-as", "Audited Supplier"), (".tip-diamond", "Diamond Member"))

_PDP_RESOLUTION_RE = re.compile(r"/\d+f\d+j\d+/")


@dataclass
class MicProductSummary:
    name: str
    url: str
    image: Optional[str] = None


@dataclass
class MicCompany:
    company_name: str
    company_url: str
    company_id: str
    business_type: Optional[str] = None
    main_products: List[str] = field(default_factory=list)
    city: Optional[str] = None
    province: Optional[str] = None
    is_audited_supplier: bool = False
    capability_stars: Optional[int] = None
    certifications: Optional[str] = None
    company_logo_url: Optional[str] = None
    inquiry_url: Optional[str] = None
    chat_id: Optional[str] = None
    product_list: List[MicProductSummary] = field(default_factory=list)
    product_images: List[str] = field(default_factory=list)


@dataclass
class MicCompanySearch:
    keyword: str
    page: int
    total_count: Optional[int]
    companies: List[MicCompany]


def _soup(html_or_soup: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(html_or_soup, BeautifulSoup):
        return html_or_soup
    return BeautifulSoup(html_or_soup or "", "html.parser")


def _select_nodes(soup: BeautifulSoup, selectors: Sequence[str]) -> List[Tag]:
    for css in selectors:
        nodes = soup.select(css)
        if nodes:
            return nodes
    return []


def _first(node: Tag, selectors: Sequence[str]) -> Optional[Tag]:
    for css in selectors:
        el = node.select_one(css)
        if el is not None and (clean_text(el.get_text(" ")) or el.get("href")):
            return el
    return None


def _text(node: Optional[Tag], css: Optional[str] = None) -> str:
    if node is None:
        return ""
    el = node.select_one(css) if css else node
    return clean_text(el.get_text(" ")) if el is not None else ""


def _href(node: Optional[Tag], base: str = BASE_URL) -> str:
    if node is None:
        return ""
    return normalize_url(node.get("href"), base)


def _images(node: Tag, css: str) -> List[str]:
    return unique(img_url(img, BASE_URL) for img in node.select(css))


def extract_total_count(html_or_soup: Union[str, BeautifulSoup]) -> Optional[int]:
    soup = _soup(html_or_soup)
    for attr in TOTAL_COUNT_ATTRS:
        el = soup.find(attrs={attr: True})
        if el is None:
            continue
        raw = str(el.get(attr) or "").replace(",", "").strip()
        if raw.isdigit():
            return int(raw)
    for css in TOTAL_COUNT_TEXT_SELECTORS:
        el = soup.select_one(css)
        if el is None:
            continue
        digits = re.sub(r"[^0-9]", "", el.get_text())
        if digits:
            return int(digits)
    return None


def _attributes_from_pairs(node: Tag) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for li in node.select(".property-list li"):
        key, sep, value = _text(li).partition(":")
        if sep and key.strip() and value.strip():
            attrs[key.strip()] = value.strip()
    return attrs


def _listing_moq(node: Tag) -> str:
    fallback = ""
    for info in node.select(".info"):
        text = _text(info)
        if "MOQ" in text:
            return text.replace("(MOQ)", "").strip()
        if not fallback and "US$" not in text and "price-info" not in (info.get("class") or []):
            fallback = text
    return fallback


def _listing_badges(node: Tag) -> List[str]:
    badges: List[str] = []
    auth_text = _text(node, ".auth-block-list")
    for badge in _AUTH_TEXT_BADGES:
        if badge in auth_text:
            badges.append(badge)
    auth_list = node.select_one(".auth-list")
    if auth_list is not None:
        for css, badge in _AUTH_ICON_BADGES:
            if auth_list.select_one(css) is not None:
                badges.append(badge)
    if node.select_one(".icon-deal") is not None or "Secured Trading" in auth_text:
        badges.append("Secured Trading")
    return unique(badges)


def parse_product_search(html: str) -> List[dict]:
    """Выдача multi-search: один узел .list-node на товар."""
    soup = _soup(html)
    results: List[dict] = []
    for node in _select_nodes(soup, LISTING_NODE_SELECTORS):
        link = _first(node, PRODUCT_LINK_SELECTORS)
        title = _text(link)
        product_url = _href(link)
        if not title and not product_url:
            continue

        images = _images(node, ".img-wrap img") or _images(node, ".prod-img img")
        company = _first(node, COMPANY_LINK_SELECTORS)

        results.append(
            {
                "title": title,
                "product_url": product_url,
                "image_url": images[0] if images else "",
                "images": images,
                "price": _text(node, ".price"),
                "moq": _listing_moq(node),
                "company_name": _text(company),
                "company_url": _href(company),
                "location": _text(_first(node, LOCATION_SELECTORS)),
                "attributes": _attributes_from_pairs(node),
                "badges": _listing_badges(node),
            }
        )
    return results


def parse_image_search(html: str) -> List[dict]:
    """Результаты поиска по картинке (и ajax-страницы того же поиска)."""
    soup = _soup(html)
    results: List[dict] = []
    for node in _select_nodes(soup, IMAGE_RESULT_NODE_SELECTORS):
        link = _first(node, PRODUCT_LINK_SELECTORS)
        title = _text(link)
        product_url = _href(link)
        if not title and not product_url:
            continue

        images = _images(node, ".prod-img img, .img-thumb-inner img")

        moq = ""
        for item in node.select(".attr-item"):
            if "Min. Order" in item.get_text():
                moq = _text(item, ".attribute strong") or _text(item, ".attribute")
                break

        company = node.select_one(".company-name .compnay-name")
        company_name = ""
        if company is not None:
            span = company.select_one("span[title]")
            company_name = clean_text(span.get("title")) if span is not None else _text(company)

        attributes: Dict[str, str] = {}
        for prop in node.select(".hide-area .prop-item"):
            key = _text(prop, ".prop-lab").replace(":", "").strip()
            value = _text(prop, ".prop-val")
            if key and value:
                attributes[key] = value

        results.append(
            {
                "title": title,
                "product_url": product_url,
                "image_url": images[0] if images else "",
                "images": images,
                "price": _text(node, ".price"),
                "moq": moq,
                "company_name": company_name,
                "company_url": _href(company),
                "location": "",
                "attributes": attributes,
                "badges": _listing_badges(node),
            }
        )
    return results


def _company_id_from_ads(ads_data: Optional[str]) -> Optional[str]:
    m = re.search(r"pcid:([A-Za-z0-9]+)", ads_data or "")
    return m.group(1) if m else None


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _intro_rows(node: Tag) -> Dict[str, str]:
    rows: Dict[str, str] = {}
    for tr in node.select(".company-intro tr"):
        cells = tr.find_all("td")
        if len(cells) < 2:
            continue
        rows[_text(cells[0]).lower()] = _text(cells[1])
    return rows


def _row(rows: Dict[str, str], prefix: str) -> str:
    for label, value in rows.items():
        if label.startswith(prefix):
            return value
    return ""


def _company_location(node: Tag, rows: Dict[str, str]) -> tuple:
    city = province = None
    # Вид поиска товаров: «Province, China» или «City, Province, China».
    address = _text(_first(node, (".company-address-detail", ".company-address-info .tip-address .tip-para")))
    if address:
        parts = [p.strip() for p in address.split(",") if p.strip()]
        if "China" in parts and parts.index("China") > 0:
            province = parts[parts.index("China") - 1]
        elif len(parts) >= 2:
            province = parts[-2]
    # Вид поиска компаний: строка «City/Province» в таблице.
    value = _row(rows, "city/province")
    if value:
        bits = [b.strip() for b in re.split(r"[,|]", value)]
        if bits and bits[0]:
            city = bits[0]
        if len(bits) > 1 and bits[1]:
            province = bits[1]
    return city, province


def _company_products(node: Tag) -> List[MicProductSummary]:
    products: List[MicProductSummary] = []
    for li in node.select("ul.rec-product li"):
        link = li.select_one(".img-thumb a, .pro-name a")
        url = _href(link)
        if not url:
            continue
        name = _text(li, ".pro-name a") or _text(link) or "Product"
        image = img_url(li.select_one("img"), BASE_URL) or None
        products.append(MicProductSummary(name=name, url=url, image=image))
    if products:
        return products

    # Вид поиска товаров: списка нет, берём основной товар узла.
    link = node.select_one("h2.product-name a")
    name = _text(link)
    url = _href(link)
    if name and url:
        image = img_url(node.select_one(".prod-img .img-thumb-inner img"), BASE_URL) or None
        products.append(MicProductSummary(name=name, url=url, image=image))
    return products


def _capability_stars(node: Tag) -> Optional[int]:
    stars = node.select(".auth-icon-list .icon-star img")
    if not stars:
        return None
    filled = sum(1 for img in stars if "gray" not in str(img.get("src") or "").lower())
    return filled or None


def _parse_company(node: Tag, index: int) -> Optional[MicCompany]:
    link = _first(node, COMPANY_LINK_SELECTORS)
    name = _text(link)
    if not name:
        return None

    rows = _intro_rows(node)
    city, province = _company_location(node, rows)
    product_list = _company_products(node)

    certs = [_text(el) for el in node.select(".auth-icon-list .icon-text")]
    certs = [c for c in certs if c]
    main_products = [p.strip() for p in re.split(r"[,|]", _row(rows, "main products")) if p.strip()]
    business_type = _text(node, ".company-tag .tag-list") or _row(rows, "business type") or None
    chat = node.select_one("b.tm3_chat_status")

    return MicCompany(
        company_name=name,
        company_url=normalize_url(link.get("href"), BASE_URL) or BASE_URL,
        company_id=_company_id_from_ads(link.get("ads-data")) or f"mic-{_slug(name)}-{index}",
        business_type=business_type,
        main_products=main_products,
        city=city,
        province=province,
        is_audited_supplier=node.select_one(".auth-icon-list .as-logo, .auth-icon-list .icon-audited") is not None,
        capability_stars=_capability_stars(node),
        certifications=", ".join(certs) or None,
        inquiry_url=_href(node.select_one("a.contact-btn")) or None,
        chat_id=(chat.get("cid") if chat is not None else None) or None,
        product_list=product_list,
        product_images=unique(p.image for p in product_list),
    )


def parse_company_search(html: str, keyword: str, page: int) -> MicCompanySearch:
    soup = _soup(html)
    companies: List[MicCompany] = []
    for index, node in enumerate(_select_nodes(soup, LISTING_NODE_SELECTORS)):
        company = _parse_company(node, index)
        if company is not None:
            companies.append(company)
    return MicCompanySearch(
        keyword=keyword,
        page=page,
        total_count=extract_total_count(soup),
        companies=companies,
    )


def parse_storefront_search(html: str, source_url: str, keyword: str) -> List[dict]:
    """Поиск по ключевому слову внутри витрины одного поставщика."""
    soup = _soup(html)
    products: List[dict] = []
    for node in _select_nodes(soup, STOREFRONT_NODE_SELECTORS):
        link = node.select_one(".prod-title a")
        title = clean_text(link.get("title")) if link is not None and link.get("title") else _text(link)
        href = (link.get("href") or "").strip() if link is not None else ""
        if not title and not href:
            continue

        url = normalize_url(href, source_url)
        if href and not url.startswith("http"):
            url = urljoin(source_url.rstrip("/") + "/", href)

        value = _text(node, ".prod-price .value")
        unit = _text(node, ".prod-price .unit")
        price = f"{value} {unit}".strip() if value else (_text(node, ".prod-price") or "")
        moq = _text(node, ".min-order .value") or _text(node, ".min-order")

        products.append(
            {
                "id": str(node.get("data-prodid") or ""),
                "title": title,
                "url": url,
                "image": img_url(node.select_one(".prod-image img"), BASE_URL),
                "price": price,
                "moq": moq,
                "source": "MIC",
                "metadata": {"search_keyword": keyword, "supplier_url": source_url},
            }
        )
    return products


def parse_product_detail(html: str, url: str) -> dict:
    soup = _soup(html)

    m = re.search(r"/product/([^/]+)/", url or "")
    product_id = m.group(1) if m else ""

    title = ""
    for css in (".sr-proMainInfo-baseInfoH1 span:last-of-type", "h1.sr-proMainInfo-baseInfoH1", "h1"):
        title = _text(soup, css)
        if title:
            break

    pricing = []
    for slide in soup.select(".swiper-slide-div"):
        price = _text(slide, ".swiper-money-container")
        quantity = _text(slide, ".swiper-unit-container")
        if price and quantity:
            pricing.append({"price": price, "quantity": quantity})

    specs = []
    for item in soup.select(".prod-spec-item"):
        name = _text(item, ".prod-spec-name")
        values = []
        for value_item in item.select(".prod-spec-value-item"):
            img = value_item.select_one("img")
            label = (img.get("alt") if img is not None else "") or _text(value_item)
            values.append({"label": label, "image_url": normalize_url(img.get("src"), BASE_URL) if img is not None else None})
        if name and values:
            specs.append({"name": name, "values": values})

    attributes: Dict[str, str] = {}
    for tr in soup.select(".sr-proMainInfo-baseInfo-propertyAttr table tr"):
        label = _text(tr, "th").rstrip(":").strip()
        value = _text(tr, "td")
        if label and value:
            attributes[label] = value

    media: List[str] = []
    for img in soup.select(".J-pic-item img, .sr-proMainInfo-slide-picItem img"):
        src = normalize_url(img.get("src") or img.get("data-original"), BASE_URL)
        if not src or "transparent.png" in src:
            continue
        # Превью вида /220f0j00/ меняем на полноразмерное изображение.
        media.append(_PDP_RESOLUTION_RE.sub("/2f0j00/", src))
    for item in soup.select(".J-pic-item[fsrc], .sr-proMainInfo-slide-picItem[fsrc]"):
        media.append(normalize_url(item.get("fsrc"), BASE_URL))

    supplier_name = _text(soup, ".sr-comInfo-title a") or _text(soup, ".sr-com-info .title-txt a")
    supplier_location = _text(soup, ".company-location .tip-con") or _text(soup, ".detail-address")

    return {
        "id": product_id,
        "title": title,
        "url": url,
        "pricing": pricing,
        "specs": specs,
        "attributes": attributes,
        "media_urls": unique(media),
        "supplier_name": supplier_name or None,
        "supplier_location": supplier_location or None,
    }
