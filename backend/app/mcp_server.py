"""
MCP surface for chat clients: the interviewer prompt, report generation
and an HTML widget that renders a generated report.

    python -m app.mcp_server        # streamable HTTP on MCP_HOST:MCP_PORT/mcp
"""

import logging
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, Field

from app.interview.prompts import INTERVIEWER_SYSTEM_PROMPT
from app.reporting.generator import ReportGenerator
from core.config import MCP_HOST, MCP_PORT
from core.logger import log_event

logger = logging.getLogger("app.mcp_server")

SERVER_NAME = "lune-interviewer"
REPORT_WIDGET_URI = "ui://lune/report.html"
REPORT_WIDGET_MIME = "text/html+skybridge"

REPORT_WIDGET_HTML = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<style>
  body { font-family: system-ui, sans-serif; margin: 0; padding: 12px; }
  h2 { font-size: 15px; margin: 14px 0 6px; }
  li { margin: 2px 0; }
  .muted { color: #666; }
</style>
</head>
<body>
<div id="report" class="muted">Waiting for report...</div>
<script>
  function list(items) {
    if (!Array.isArray(items) || !items.length) return "<p class='muted'>None</p>";
    return "<ul>" + items.map(function (item) {
      var text = typeof item === "string" ? item : (item.quote || item.text || JSON.stringify(item));
      return "<li>" + String(text).replace(/</g, "&lt;") + "</li>";
    }).join("") + "</ul>";
  }
  function render(report) {
    if (!report) return;
    var summary = report.exec_summary || {};
    var ratings = (report.ratings && report.ratings.dimensions) || [];
    var themes = report.themes || {};
    document.getElementById("report").className = "";
    document.getElementById("report").innerHTML =
      "<h2>Summary (" + (summary.overall_sentiment || "unknown") + ")</h2>" + list(summary.bullets) +
      "<h2>Ratings</h2>" + list(ratings.map(function (d) {
        return d.label + ": " + (d.value === null ? "n/a" : d.value);
      })) +
      "<h2>Wins</h2>" + list(themes.wins) +
      "<h2>Blockers</h2>" + list(themes.blockers) +
      "<h2>Tools used</h2>" + list(report.tools_used);
  }
  var output = window.openai && window.openai.toolOutput;
  render(output && output.report);
  window.addEventListener("openai:set_globals", function (event) {
    var globals = event.detail && event.detail.globals;
    render(globals && globals.toolOutput && globals.toolOutput.report);
  });
</script>
</body>
</html>
"""


class ReportTurn(BaseModel):
    role: str
    text: str = Field(min_length=1)


def interviewer_prompt_result() -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=INTERVIEWER_SYSTEM_PROMPT.strip())],
        structuredContent={"prompt": INTERVIEWER_SYSTEM_PROMPT},
    )


async def report_result(
    generator: ReportGenerator,
    transcripts: list[ReportTurn],
    interview_id: Optional[str] = None,
) -> CallToolResult:
    """Generate a report and point the client at the widget that renders it.

    Generation errors propagate; FastMCP turns them into an error result.
    """
    interview_id = interview_id or "unknown"
    turns = [turn.model_dump() for turn in transcripts]
    log_event("mcp", "generate_report", interview_id, turns=len(turns))
    report = await generator.generate(interview_id, turns)
    return CallToolResult.model_validate(
        {
            "_meta": {
                "openai/outputTemplate": REPORT_WIDGET_URI,
                "openai/widgetPrefersBorder": True,
            },
            "content": [{"type": "text", "text": "Report generated."}],
            "structuredContent": {"report": report},
        }
    )


def build_mcp_server(generator: Optional[ReportGenerator] = None) -> FastMCP:
    generator = generator or ReportGenerator()
    server = FastMCP(
        SERVER_NAME,
        host=MCP_HOST,
        port=MCP_PORT,
        json_response=True,
        stateless_http=True,
    )

    @server.resource(
        REPORT_WIDGET_URI,
        name="lune-report-widget",
        title="Lune Interview Report",
        mime_type=REPORT_WIDGET_MIME,
    )
    def report_widget() -> str:
        return REPORT_WIDGET_HTML

    @server.tool(
        name="get_interviewer_prompt",
        title="Get Lune interviewer prompt",
        description="Returns the canonical Lune interview system prompt for ChatGPT Enterprise usage interviews.",
    )
    def get_interviewer_prompt() -> CallToolResult:
        return interviewer_prompt_result()

    @server.tool(
        name="generate_report",
        title="Generate Lune interview report",
        description=(
            "Generates the structured Lune report from an interview transcript. "
            "Provide transcript turns in order."
        ),
    )
    async def generate_report(
        transcripts: Annotated[list[ReportTurn], Field(min_length=1)],
        interview_id: Optional[str] = None,
    ) -> CallToolResult:
        return await report_result(generator, transcripts, interview_id)

    return server


def main() -> None:
    logging.basicConfig(
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        level=logging.INFO,
    )
    logger.info("[SYSTEM] MCP server listening on http://%s:%s/mcp", MCP_HOST, MCP_PORT)
    build_mcp_server().run(transport="streamable-http")


if __name__ == "__main__":
    main()
