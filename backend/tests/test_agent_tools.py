"""Tests for the agent search tool."""

import base64

import pytest
from pydantic import ValidationError

from factories import FakeProvider, make_product
from suppliercanvas.agent_tools import SearchToolInput, build_inputs, run_search_tool, summarize
from suppliercanvas.search_providers.base import ImageUpload, PlatformType, SearchInputType
from suppliercanvas.search_service import UnifiedSearchService


def test_tool_input_requires_queries():
    with pytest.raises(ValidationError):
        SearchToolInput(queries=[])
    assert SearchToolInput(queries=["sofa"]).search_type == "products"


def test_build_inputs_assigns_ids():
    inputs = build_inputs(
        ["sofa", "  ", "lamp"],
        [ImageUpload(data=b"a", content_type="image/png", filename="a.png"), b"raw", "data:image/jpeg;base64,AAAA"],
    )

    assert [(i.id, i.type) for i in inputs] == [
        ("q1", SearchInputType.TEXT),
        ("q3", SearchInputType.TEXT),
        ("img1", SearchInputType.IMAGE),
        ("img2", SearchInputType.IMAGE),
        ("img3", SearchInputType.IMAGE),
    ]
    assert inputs[2].file == b"a"
    assert inputs[2].content_type == "image/png"
    assert inputs[3].file == b"raw"
    assert inputs[4].value == "data:image/jpeg;base64,AAAA"


def test_summarize():
    assert summarize(3, ["sofa", "lamp"]) == 'Found 3 suppliers for "sofa", "lamp".'


@pytest.mark.asyncio
async def test_run_search_tool():
    alibaba = FakeProvider(PlatformType.ALIBABA, {"sofa": [make_product("a1", supplier_id="s1")]})
    mic = FakeProvider(PlatformType.MADEINCHINA, {"sofa": [make_product("m1", platform=PlatformType.MADEINCHINA)]})
    service = UnifiedSearchService({PlatformType.ALIBABA: alibaba, PlatformType.MADEINCHINA: mic})
    image = "data:image/jpeg;base64," + base64.b64encode(b"jpeg").decode("ascii")

    summary, artifact = await run_search_tool(service, SearchToolInput(queries=["sofa"]), attachments=[image])

    assert summary == 'Found 2 suppliers for "sofa".'
    assert artifact.count == 2
    assert artifact.error is None
    assert [i.id for i in artifact.inputs] == ["q1", "img1"]
    assert {s.id for s in artifact.results} == {"alibaba-s1", "madeinchina-s1"}


@pytest.mark.asyncio
async def test_run_search_tool_reports_failures():
    class BrokenService:
        async def search_unified(self, inputs, platforms=None):
            raise RuntimeError("orchestrator down")

    summary, artifact = await run_search_tool(BrokenService(), SearchToolInput(queries=["sofa"], search_type="suppliers"))

    assert summary == "Search failed: orchestrator down"
    assert artifact.results == []
    assert artifact.count == 0
    assert artifact.search_type == "suppliers"
    assert artifact.error == "orchestrator down"
