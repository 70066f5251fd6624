"""
Keyword heuristics applied to interviewer text.
Changing these changes when the interview is considered over
and when the consent prompt is considered already spoken.
"""

import re

CONSENT_QUESTION = "Are you happy to continue?"

ANYTHING_ELSE_PHRASES = (
    "anything else you want to add",
    "anything else you'd like to add",
)
THANKS_PHRASES = ("thank you", "thanks")
WRAP_UP_PHRASES = (
    "wrap",
    "that's all",
    "that concludes",
    "we're done",
    "we are done",
)

_PUNCTUATION = re.compile(r"[?.!]")


def normalize(text: str) -> str:
    return _PUNCTUATION.sub("", str(text or "").lower()).strip()


def has_consent_question(text) -> bool:
    if not isinstance(text, str):
        return False
    return normalize(CONSENT_QUESTION) in normalize(text)


def is_closing_line(text) -> bool:
    """
    Closing line = an explicit "anything else" prompt,
    or a thank-you combined with wrap-up phrasing.
    """
    if not text:
        return False
    lowered = str(text).lower()
    if any(phrase in lowered for phrase in ANYTHING_ELSE_PHRASES):
        return True
    has_thanks = any(phrase in lowered for phrase in THANKS_PHRASES)
    has_wrap = any(phrase in lowered for phrase in WRAP_UP_PHRASES)
    return has_thanks and has_wrap
