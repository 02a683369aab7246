"""
Инструмент поиска для агента: список текстовых запросов + вложенные картинки -> единый поиск.
Возвращает короткую сводку для модели и полный артефакт для клиента.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from .search_providers.base import ImageUpload, SearchInput, SearchInputType, UnifiedSupplier
from .search_service import UnifiedSearchService


logger = logging.getLogger("uvicorn.error")

SEARCH_TOOL_NAME = "search_suppliers"
SEARCH_TOOL_DESCRIPTION = (
    "Search Alibaba and Made-in-China for products or suppliers. "
    "Takes a list of search query strings; attached images are searched as well."
)

Attachment = Union[str, bytes, ImageUpload]


class SearchToolInput(BaseModel):
    queries: List[str] = Field(..., min_length=1, description="List of search query strings to execute.")
    search_type: Literal["products", "suppliers"] = Field(
        "products",
        description="Type of search to perform: products or suppliers.",
    )


@dataclass
class SearchToolOutput:
    queries: List[str]
    search_type: str
    results: List[UnifiedSupplier] = field(default_factory=list)
    count: int = 0
    inputs: List[SearchInput] = field(default_factory=list)
    error: Optional[str] = None


def build_inputs(queries: Sequence[str], attachments: Sequence[Attachment] = ()) -> List[SearchInput]:
    inputs: List[SearchInput] = []
    for i, q in enumerate(queries, start=1):
        q = (q or "").strip()
        if q:
            inputs.append(SearchInput(id=f"q{i}", type=SearchInputType.TEXT, value=q))
    for i, att in enumerate(attachments, start=1):
        input_id = f"img{i}"
        if isinstance(att, ImageUpload):
            inputs.append(
                SearchInput(
                    id=input_id,
                    type=SearchInputType.IMAGE,
                    value=att.filename,
                    file=att.data,
                    content_type=att.content_type,
                )
            )
        elif isinstance(att, bytes):
            inputs.append(SearchInput(id=input_id, type=SearchInputType.IMAGE, value="image.jpg", file=att))
        else:
            # data: URI, декодируется уже в оркестраторе.
            inputs.append(SearchInput(id=input_id, type=SearchInputType.IMAGE, value=att))
    return inputs


def summarize(count: int, queries: Sequence[str]) -> str:
    quoted = ", ".join(f'"{q}"' for q in queries)
    return f"Found {count} suppliers for {quoted}."


async def run_search_tool(
    service: UnifiedSearchService,
    tool_input: SearchToolInput,
    attachments: Sequence[Attachment] = (),
) -> Tuple[str, SearchToolOutput]:
    queries = [q.strip() for q in tool_input.queries if q and q.strip()]
    inputs = build_inputs(queries, attachments)
    logger.info("agent: search %s (type=%s, attachments=%s)", queries, tool_input.search_type, len(attachments))
    try:
        results = await service.search_unified(inputs)
    except Exception as e:
        logger.error("agent: search tool failed: %s: %s", type(e).__name__, e)
        artifact = SearchToolOutput(
            queries=queries,
            search_type=tool_input.search_type,
            inputs=inputs,
            error=str(e) or type(e).__name__,
        )
        return f"Search failed: {artifact.error}", artifact

    artifact = SearchToolOutput(
        queries=queries,
        search_type=tool_input.search_type,
        results=results,
        count=len(results),
        inputs=inputs,
    )
    return summarize(artifact.count, queries), artifact
