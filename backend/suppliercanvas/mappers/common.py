import re
import uuid
from typing import Any, List, Optional, Pattern, Tuple
from urllib.parse import urljoin


UNTITLED_PRODUCT = "Untitled Product"

# Порядок важен: HK$/SG$/AU$/CA$ проверяем раньше «голого» $, иначе они уйдут в USD.
_CURRENCY_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"US\s?\$|USD", re.IGNORECASE), "USD"),
    (re.compile(r"HK\$|HKD"), "HKD"),
    (re.compile(r"SG\$|SGD"), "SGD"),
    (re.compile(r"AU\$|AUD"), "AUD"),
    (re.compile(r"CA\$|CAD"), "CAD"),
    (re.compile(r"^\$"), "USD"),
    (re.compile(r"EUR|€"), "EUR"),
    (re.compile(r"GBP|£"), "GBP"),
    (re.compile(r"INR|₹"), "INR"),
    (re.compile(r"CNY|RMB|¥|￥"), "CNY"),
]


def detect_currency(price: Any) -> Optional[str]:
    if not isinstance(price, str) or not price:
        return None
    normalized = price.strip()
    for pattern, code in _CURRENCY_PATTERNS:
        if pattern.search(normalized):
            return code
    return None


def first_str(*values: Any) -> Optional[str]:
    """Первая непустая строка из кандидатов. JSON площадок типизирован слабо: dict, list и числа пропускаем."""
    for v in values:
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def format_location(city: Any, region: Any) -> Optional[str]:
    city = city.strip() if isinstance(city, str) else ""
    region = region.strip() if isinstance(region, str) else ""
    if city and region:
        return f"{city}, {region}"
    return city or region or None


def normalize_url(url: Any, base: str = "") -> str:
    if not isinstance(url, str):
        return ""
    u = url.strip()
    if not u or u.startswith("javascript:"):
        return ""
    if u.startswith("http://") or u.startswith("https://"):
        return u
    if u.startswith("//"):
        return f"https:{u}"
    if u.startswith("/") and base:
        return urljoin(base, u)
    return u


def random_token() -> str:
    return uuid.uuid4().hex[:9]


def text_or_none(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None
