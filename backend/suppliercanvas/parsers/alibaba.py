"""
Alibaba: разбор выдачи.

Текстовый поиск отдаёт HTML, в который встроен JSON со списком офферов
(`window.__page__data_sse10._offer_list = {...}`). Поиск по картинке и поиск поставщиков
отдают JSON напрямую, но форма ответа у эндпоинтов плавает, поэтому пути перебираем по порядку.
"""

import json
import re
from typing import Any, List, Optional, Sequence, Tuple

from suppliercanvas.errors import UpstreamParseError


PLATFORM = "alibaba"

MAX_IMAGE_REGIONS = 4

_OFFER_LIST_RE = re.compile(
    r"window\.__page__data_sse10\._offer_list\s*=\s*(\{[\s\S]*?\})(?=\s*;?\s*</script>)"
)

# Стратегии поиска офферов в ответе поиска по картинке: первая непустая побеждает.
IMAGE_SEARCH_OFFER_PATHS: Sequence[Tuple[str, ...]] = (
    ("model", "offers"),
    ("model", "offerResultData", "offers"),
    ("data", "offers"),
)
IMAGE_SEARCH_COUNT_PATHS: Sequence[Tuple[str, ...]] = (
    ("model", "totalCount"),
    ("data", "totalCount"),
)


def _dig(obj: Any, path: Sequence[str]) -> Any:
    cur = obj
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else None


def _offers(value: Any) -> List[dict]:
    if not isinstance(value, list):
        return []
    return [o for o in value if isinstance(o, dict)]


def extract_offer_list(html: str) -> Tuple[List[dict], Optional[int]]:
    m = _OFFER_LIST_RE.search(html or "")
    if not m:
        raise UpstreamParseError(PLATFORM, "offer list payload not found in search page")
    try:
        offer_list = json.loads(m.group(1))
    except json.JSONDecodeError as e:
        raise UpstreamParseError(PLATFORM, f"offer list payload is not valid JSON: {e}") from e
    if not isinstance(offer_list, dict):
        raise UpstreamParseError(PLATFORM, "offer list payload is not an object")

    result_data = offer_list.get("offerResultData")
    if not isinstance(result_data, dict):
        raise UpstreamParseError(PLATFORM, "offerResultData missing in offer list payload")

    return _offers(result_data.get("offers")), _to_int(result_data.get("totalCount"))


def extract_image_search_offers(payload: Any) -> Tuple[List[dict], Optional[int]]:
    if not isinstance(payload, dict):
        raise UpstreamParseError(PLATFORM, "image search response is not an object")

    offers: List[dict] = []
    for path in IMAGE_SEARCH_OFFER_PATHS:
        offers = _offers(_dig(payload, path))
        if offers:
            break

    total: Optional[int] = None
    for path in IMAGE_SEARCH_COUNT_PATHS:
        total = _to_int(_dig(payload, path))
        if total:
            break
    return offers, total


def extract_supplier_offers(payload: Any) -> Tuple[List[dict], Optional[int]]:
    if not isinstance(payload, dict):
        raise UpstreamParseError(PLATFORM, "supplier search response is not an object")
    return _offers(_dig(payload, ("model", "offers"))), _to_int(_dig(payload, ("model", "totalCount")))


def parse_upload_response(payload: Any) -> Tuple[str, List[Any]]:
    """
    Ответ загрузки картинки: {success, model: {imagePath, regions}}.
    Регионов берём не больше четырёх, дальше они уходят в поиск как JSON-строка.
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        raise UpstreamParseError(PLATFORM, "image upload was not successful")
    image_path = _dig(payload, ("model", "imagePath"))
    if not image_path:
        raise UpstreamParseError(PLATFORM, "image upload response has no imagePath")
    regions = _dig(payload, ("model", "regions"))
    if not isinstance(regions, list):
        regions = []
    return str(image_path), regions[:MAX_IMAGE_REGIONS]
