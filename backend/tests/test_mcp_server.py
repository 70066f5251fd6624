import pytest
from mcp.server.fastmcp.exceptions import ToolError

from app.interview.prompts import INTERVIEWER_SYSTEM_PROMPT
from app.mcp_server import (
    REPORT_WIDGET_MIME,
    REPORT_WIDGET_URI,
    ReportTurn,
    build_mcp_server,
    interviewer_prompt_result,
    report_result,
)
from app.reporting.generator import ReportGenerationError
from interview_fakes import StubGenerator, sample_report


def test_interviewer_prompt_tool_returns_text_and_structured_prompt():
    result = interviewer_prompt_result()

    assert result.content[0].text == INTERVIEWER_SYSTEM_PROMPT.strip()
    assert result.structuredContent == {"prompt": INTERVIEWER_SYSTEM_PROMPT}


@pytest.mark.asyncio
async def test_report_result_wraps_generated_report_for_the_widget():
    generator = StubGenerator()
    turns = [ReportTurn(role="interviewer", text="What's your role?"), ReportTurn(role="participant", text="I'm a CSM")]

    result = await report_result(generator, turns, "iv-9")

    assert result.structuredContent == {"report": sample_report("iv-9")}
    assert result.content[0].text == "Report generated."
    assert result.meta["openai/outputTemplate"] == REPORT_WIDGET_URI
    assert generator.calls == [
        ("iv-9", [{"role": "interviewer", "text": "What's your role?"}, {"role": "participant", "text": "I'm a CSM"}])
    ]


@pytest.mark.asyncio
async def test_report_result_without_id_uses_unknown():
    generator = StubGenerator()

    await report_result(generator, [ReportTurn(role="participant", text="Yes")])

    assert generator.calls[0][0] == "unknown"


@pytest.mark.asyncio
async def test_report_result_propagates_generation_failure():
    generator = StubGenerator(error=ReportGenerationError("fallback model failed"))

    with pytest.raises(ReportGenerationError):
        await report_result(generator, [ReportTurn(role="participant", text="Yes")])


@pytest.mark.asyncio
async def test_server_registers_tools_and_widget_resource():
    server = build_mcp_server(StubGenerator())

    tools = {tool.name: tool for tool in await server.list_tools()}
    assert sorted(tools) == ["generate_report", "get_interviewer_prompt"]
    assert tools["generate_report"].inputSchema["required"] == ["transcripts"]

    contents = list(await server.read_resource(REPORT_WIDGET_URI))
    assert contents[0].mime_type == REPORT_WIDGET_MIME
    assert "window.openai" in contents[0].content


@pytest.mark.asyncio
async def test_generate_report_rejects_empty_transcripts_and_blank_text():
    generator = StubGenerator()
    server = build_mcp_server(generator)

    with pytest.raises(ToolError):
        await server.call_tool("generate_report", {"transcripts": []})
    with pytest.raises(ToolError):
        await server.call_tool("generate_report", {"transcripts": [{"role": "participant", "text": ""}]})
    assert generator.calls == []
