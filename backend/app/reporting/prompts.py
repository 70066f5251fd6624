from .schema import TOOLS_VOCABULARY

_TOOLS = ", ".join(f'"{name}"' for name in TOOLS_VOCABULARY)

REPORT_PROMPT = f"""
You are writing a structured research report about ChatGPT Enterprise usage from one interview transcript.

Rules:
- Do NOT invent facts
- If a field is not clearly supported by the transcript, set it to null (tools_used uses ["Unknown"])
- Be concrete and specific, avoid generic claims
- Prefer verbatim evidence over inference; label any interpretation and keep it conservative
- Do NOT add, remove, rename or reorder top-level fields

Sections:
1) exec_summary: 3-6 decision-useful bullets (use case and outcome, stated impact, constraints,
   enablement asks, rating signal). overall_sentiment is positive, mixed, negative or unknown.
2) tools_used: only from [{_TOOLS}], and only when mentioned or unambiguously implied.
3) ratings: five 1-5 dimensions (weekly frequency, workflow fit, barrier handling, overall impact,
   enablement/support). Fill a value only when the participant gives a rating or a direct numeric
   proxy, otherwise null. notes holds any stated rationale or trade-offs.
4) use_case: a one-line title, the intended goal, 3-6 workflow steps written as actions
   (include sanitization, checks, approvals or handoffs if stated), the role ChatGPT plays,
   2-5 positive outcomes and 1-4 negative outcomes when supported.
5) themes: wins and blockers as pattern statements backed by at least one quote, plus
   feature_requests, enablement_needs and risks_or_caveats (1-4 bullets each).
6) evidence.quotes: 3-7 short quotes with a timestamp or turn index in "when".
7) key_quotes: 5-8 non-redundant quotes supporting the summary, themes, outcomes and risks,
   each with a topic label matching a report section (Use case, Tools, Impact, Safety,
   Adoption, Enablement need, Blocker).
8) quality: transcript_quality (good, mixed, poor, unknown) and any ambiguity notes.

Capture workflow reality (trigger, steps, artifacts, checks, output, downstream effect), trust
boundaries (what stays out of prompts, what is verified, what stays manual) and conditions
("only when", "depends on"). Leave anything not in the transcript null rather than guessing.
""".strip()


def format_transcript(transcripts: list[dict]) -> str:
    lines = []
    for index, turn in enumerate(transcripts or [], start=1):
        role = str((turn or {}).get("role") or "unknown")
        text = str((turn or {}).get("text") or "").strip()
        lines.append(f"{index}. [{role}] {text}")
    return "\n".join(lines)


def build_report_input(interview_id: str, transcripts: list[dict]) -> list[dict]:
    return [
        {"role": "system", "content": REPORT_PROMPT},
        {
            "role": "user",
            "content": f"Interview ID: {interview_id}\nTranscript turns:\n{format_transcript(transcripts)}",
        },
    ]
