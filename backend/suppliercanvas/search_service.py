"""
Единый поиск: раскидываем каждый вход (текст или картинку) по всем выбранным площадкам,
дожидаемся всех задач и группируем найденные товары по поставщикам.

Падение одной пары (вход, площадка) превращается в пустой список и не влияет на остальные.
"""

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import settings
from .errors import InvalidSearchRequest
from .search_providers.base import (
    AggregatedSearchResult,
    ImageUpload,
    PlatformType,
    SearchInput,
    SearchInputType,
    SearchProvider,
    UnifiedProduct,
    UnifiedSupplier,
)


logger = logging.getLogger("uvicorn.error")

UNKNOWN_SUPPLIER = "Unknown Supplier"


@dataclass
class TaggedProduct:
    input_id: str
    product: UnifiedProduct


def decode_data_uri(value: str) -> ImageUpload:
    """data:image/png;base64,.... -> ImageUpload. Бросает ValueError на битом URI."""
    header, sep, payload = (value or "").partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("not a data URI")
    meta = header[len("data:") :]
    content_type = meta.split(";", 1)[0] or "image/jpeg"
    try:
        if ";base64" in meta:
            data = base64.b64decode(payload, validate=True)
        else:
            data = payload.encode("utf-8")
    except binascii.Error as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    ext = content_type.rsplit("/", 1)[-1] or "jpg"
    return ImageUpload(data=data, content_type=content_type, filename=f"image.{ext}")


def supplier_key(product: UnifiedProduct) -> str:
    ref = product.supplier
    return f"{product.platform.value}-{ref.id or ref.name or UNKNOWN_SUPPLIER}"


def group_products_into_suppliers(tagged: Iterable[TaggedProduct]) -> List[UnifiedSupplier]:
    """
    Один проход по списку в исходном порядке.
    Ключ поставщика: платформа + id поставщика (или имя, если id нет). Первый встреченный товар
    задаёт поля поставщика; товары дедуплицируются по id; входы копятся без повторов.
    """
    buckets: Dict[str, UnifiedSupplier] = {}
    seen_products: Dict[str, set] = {}

    for item in tagged:
        product = item.product
        key = supplier_key(product)
        bucket = buckets.get(key)
        if bucket is None:
            ref = product.supplier
            images = list(product.images) or ([product.image] if product.image else [])
            bucket = UnifiedSupplier(
                id=key,
                platform=product.platform,
                name=ref.name or UNKNOWN_SUPPLIER,
                url=ref.url,
                location=ref.location,
                badges=list(ref.badges),
                price=product.price,
                currency=product.currency,
                moq=product.moq,
                images=images,
                products=[],
                matched_input_ids=[],
                platform_specific={"supplierId": ref.id},
            )
            buckets[key] = bucket
            seen_products[key] = set()

        if product.id not in seen_products[key]:
            seen_products[key].add(product.id)
            bucket.products.append(product)
        if item.input_id not in bucket.matched_input_ids:
            bucket.matched_input_ids.append(item.input_id)

    return list(buckets.values())


def default_platforms() -> List[PlatformType]:
    out: List[PlatformType] = []
    for raw in (settings.default_platforms or "").split(","):
        raw = raw.strip().lower()
        if not raw:
            continue
        try:
            platform = PlatformType(raw)
        except ValueError:
            logger.warning("search: unknown platform %r in default_platforms, skipped", raw)
            continue
        if platform not in out:
            out.append(platform)
    return out


class UnifiedSearchService:
    def __init__(self, providers: Mapping[PlatformType, SearchProvider]) -> None:
        self.providers = dict(providers)

    def _validate(
        self,
        inputs: Sequence[SearchInput],
        platforms: Optional[Sequence[Union[PlatformType, str]]],
    ) -> Tuple[List[SearchInput], List[PlatformType]]:
        if not isinstance(inputs, (list, tuple)):
            raise InvalidSearchRequest("inputs must be a list of search inputs")
        for inp in inputs:
            if not isinstance(inp, SearchInput):
                raise InvalidSearchRequest(f"unexpected input {inp!r}")
            if not inp.id:
                raise InvalidSearchRequest("every input needs a non-empty id")
            if not isinstance(inp.type, SearchInputType):
                raise InvalidSearchRequest(f"input {inp.id}: unknown type {inp.type!r}")

        if platforms is None:
            platforms = default_platforms()
        if isinstance(platforms, (str, bytes)) or not isinstance(platforms, (list, tuple)):
            raise InvalidSearchRequest("platforms must be a list")

        resolved: List[PlatformType] = []
        for raw in platforms:
            try:
                platform = raw if isinstance(raw, PlatformType) else PlatformType(str(raw).strip().lower())
            except ValueError as e:
                raise InvalidSearchRequest(f"unknown platform {raw!r}") from e
            if platform not in self.providers:
                raise InvalidSearchRequest(f"platform {platform.value} is not configured")
            if platform not in resolved:
                resolved.append(platform)
        return list(inputs), resolved

    async def _search_one(self, inp: SearchInput, platform: PlatformType) -> List[UnifiedProduct]:
        provider = self.providers[platform]
        t0 = time.monotonic()
        try:
            if inp.type == SearchInputType.TEXT:
                res = await provider.search_text(inp.value)
            elif inp.file:
                upload = ImageUpload(
                    data=inp.file,
                    content_type=inp.content_type or "image/jpeg",
                    filename=inp.value or "image.jpg",
                )
                res = await provider.search_image(upload)
            elif (inp.value or "").startswith("data:"):
                res = await provider.search_image(decode_data_uri(inp.value))
            else:
                logger.warning("%s: image input %s has no data, skipped", platform.value, inp.id)
                return []
        except Exception as e:
            logger.error(
                "%s: search failed for input %s in %.2fs: %s: %s",
                platform.value,
                inp.id,
                time.monotonic() - t0,
                type(e).__name__,
                e,
            )
            return []
        logger.info(
            "%s: input %s -> %s products in %.2fs",
            platform.value,
            inp.id,
            len(res.unified_products),
            time.monotonic() - t0,
        )
        return res.unified_products

    async def search_unified(
        self,
        inputs: Sequence[SearchInput],
        platforms: Optional[Sequence[Union[PlatformType, str]]] = None,
    ) -> List[UnifiedSupplier]:
        inputs, resolved = self._validate(inputs, platforms)
        logger.info(
            "search: %s inputs x %s platforms (%s)",
            len(inputs),
            len(resolved),
            ",".join(p.value for p in resolved),
        )

        # Результаты складываем в порядке завершения задач: от него зависит порядок поставщиков.
        completed: List[TaggedProduct] = []

        async def run(inp: SearchInput, platform: PlatformType) -> None:
            products = await self._search_one(inp, platform)
            completed.extend(TaggedProduct(input_id=inp.id, product=p) for p in products)

        await asyncio.gather(*(run(inp, platform) for inp in inputs for platform in resolved))

        suppliers = group_products_into_suppliers(completed)
        logger.info("search: %s products grouped into %s suppliers", len(completed), len(suppliers))
        return suppliers

    async def search_aggregated(
        self,
        inputs: Sequence[SearchInput],
        platforms: Optional[Sequence[Union[PlatformType, str]]] = None,
    ) -> AggregatedSearchResult:
        results = await self.search_unified(inputs, platforms)
        return AggregatedSearchResult(
            inputs=list(inputs),
            results=results,
            timestamp=int(time.time() * 1000),
        )
