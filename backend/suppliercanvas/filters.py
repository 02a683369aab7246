import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .search_providers.base import PlatformType, UnifiedProduct


@dataclass
class FilterDefinition:
    id: str
    label: str
    type: str  # boolean | range | select | text
    platform: Optional[PlatformType] = None
    min: Optional[int] = None
    max: Optional[int] = None
    unit: Optional[str] = None
    options: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FilterValue:
    filter_id: str
    value: Any


def supported_filters() -> List[FilterDefinition]:
    return [
        FilterDefinition(id="alibaba-verified", label="Verified Supplier", type="boolean", platform=PlatformType.ALIBABA),
        FilterDefinition(
            id="alibaba-gold-years",
            label="Gold Supplier Years",
            type="range",
            platform=PlatformType.ALIBABA,
            min=0,
            max=20,
            unit="years",
        ),
        FilterDefinition(
            id="alibaba-moq",
            label="MOQ Range",
            type="range",
            platform=PlatformType.ALIBABA,
            min=1,
            max=10000,
            unit="units",
        ),
        FilterDefinition(id="mic-audited", label="Audited Supplier", type="boolean", platform=PlatformType.MADEINCHINA),
        FilterDefinition(
            id="mic-stars",
            label="Capability Stars (Min)",
            type="select",
            platform=PlatformType.MADEINCHINA,
            options=[
                {"label": "Any", "value": 0},
                {"label": "1+ Star", "value": 1},
                {"label": "2+ Stars", "value": 2},
                {"label": "3+ Stars", "value": 3},
                {"label": "4+ Stars", "value": 4},
                {"label": "5 Stars", "value": 5},
            ],
        ),
        FilterDefinition(id="supplier-badge", label="Supplier Badge", type="text"),
    ]


_FILTER_PLATFORMS = {f.id: f.platform for f in supported_filters()}


def _digits(value: Any) -> int:
    digits = re.sub(r"[^0-9]", "", str(value or ""))
    return int(digits) if digits else 0


def _in_range(number: int, value: Any) -> bool:
    if not isinstance(value, dict) or "min" not in value or "max" not in value:
        return False
    try:
        return int(value["min"]) <= number <= int(value["max"])
    except (TypeError, ValueError):
        return False


def matches_filter(product: UnifiedProduct, flt: FilterValue) -> bool:
    # Фильтр другой площадки и неизвестный фильтр товар не отсекают.
    if flt.filter_id not in _FILTER_PLATFORMS:
        return True
    platform = _FILTER_PLATFORMS[flt.filter_id]
    if platform is not None and product.platform != platform:
        return True

    data = product.platform_specific or {}
    value = flt.value

    if flt.filter_id == "alibaba-verified":
        return bool(data.get("verifiedSupplier")) == (value is True)
    if flt.filter_id == "alibaba-gold-years":
        return _in_range(_digits(data.get("goldYearsNumber")), value)
    if flt.filter_id == "alibaba-moq":
        return _in_range(_digits(product.moq), value)
    if flt.filter_id == "mic-audited":
        return bool(data.get("isAuditedSupplier")) == (value is True)
    if flt.filter_id == "mic-stars":
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return int(data.get("capabilityStars") or 0) >= value
    if flt.filter_id == "supplier-badge":
        return bool(value) and str(value) in product.supplier.badges
    return True


def apply_filters(products: Sequence[UnifiedProduct], filters: Sequence[FilterValue]) -> List[UnifiedProduct]:
    if not filters:
        return list(products)
    return [p for p in products if all(matches_filter(p, f) for f in filters)]
