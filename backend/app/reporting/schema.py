REPORT_SCHEMA_NAME = "interview_report"

REPORT_SECTIONS = (
    "meta",
    "exec_summary",
    "use_case",
    "ratings",
    "themes",
    "evidence",
    "quality",
    "tools_used",
    "key_quotes",
)

RATING_DIMENSIONS = (
    ("frequency", "How often used in a typical week (1-5)"),
    ("workflow_fit", "How well it fit into the workflow (1-5)"),
    ("impact", "Overall impact (1-5)"),
    ("barrier_handling", "Barrier-handling while using it (1-5)"),
    ("enablement_support", "Enablement/support (1-5)"),
)

TOOLS_VOCABULARY = (
    "ChatGPT (chat)",
    "Canvas",
    "Deep Research",
    "Custom GPTs",
    "API",
    "Voice",
    "Connectors",
)
UNKNOWN_TOOLS = ["Unknown"]


def _obj(properties: dict) -> dict:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": list(properties),
        "properties": properties,
    }


def _string_list() -> dict:
    return {"type": "array", "items": {"type": "string"}}


def _enum(*values: str) -> dict:
    return {"type": "string", "enum": list(values)}


def _quote_list() -> dict:
    return {
        "type": "array",
        "items": _obj({
            "when": {"type": "string"},
            "quote": {"type": "string"},
            "topic": {"type": "string"},
        }),
    }


def build_report_schema() -> dict:
    """Strict JSON schema the report model must satisfy."""
    schema = _obj({
        "meta": _obj({
            "interview_id": {"type": "string"},
            "generated_at_iso": {"type": "string"},
            "model": {"type": "string"},
            "reasoning_effort": _enum("medium", "high", "unknown"),
        }),
        "exec_summary": _obj({
            "bullets": _string_list(),
            "overall_sentiment": _enum("positive", "mixed", "negative", "unknown"),
        }),
        "use_case": _obj({
            "title": {"type": "string"},
            "goal": {"type": ["string", "null"]},
            "workflow_steps": _string_list(),
            "chatgpt_enterprise_role": {"type": ["string", "null"]},
            "outcome_positive": _string_list(),
            "outcome_negative": _string_list(),
        }),
        "ratings": _obj({
            "dimensions": {
                "type": "array",
                "items": _obj({
                    "key": {"type": "string"},
                    "label": {"type": "string"},
                    "value": {"type": ["number", "null"]},
                }),
            },
            "notes": {"type": ["string", "null"]},
        }),
        "themes": _obj({
            "wins": _string_list(),
            "blockers": _string_list(),
            "feature_requests": _string_list(),
            "enablement_needs": _string_list(),
            "risks_or_caveats": _string_list(),
        }),
        "evidence": _obj({"quotes": _quote_list()}),
        "quality": _obj({
            "transcript_quality": _enum("good", "mixed", "poor", "unknown"),
            "ambiguity_notes": _string_list(),
        }),
        "tools_used": _string_list(),
        "key_quotes": _quote_list(),
    })
    schema["required"] = list(REPORT_SECTIONS)
    return {"name": REPORT_SCHEMA_NAME, "strict": True, "schema": schema}


def response_format() -> dict:
    schema = build_report_schema()
    return {
        "type": "json_schema",
        "name": schema["name"],
        "strict": True,
        "schema": schema["schema"],
    }


def missing_sections(report) -> list[str]:
    if not isinstance(report, dict):
        return list(REPORT_SECTIONS)
    return [name for name in REPORT_SECTIONS if name not in report]
