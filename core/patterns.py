"""core/patterns.py

Reply patterns the agent must not fall into: assistant disclosure,
customer-service filler, lecture structure, interrogation. The table is
rendered into the behavior-constraints block as `avoid:` lines and checked
against every generated reply; the structural ones are cleaned up in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

__all__ = [
    "PatternRule",
    "PatternCheck",
    "PROHIBITED_PATTERNS",
    "check",
    "sanitize",
    "avoidance_lines",
]


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: Pattern[str]
    description: str
    severity: float


PROHIBITED_PATTERNS: Tuple[PatternRule, ...] = (
    PatternRule(
        "ai_disclosure",
        re.compile(
            r"\bas an? (ai|artificial intelligence|language model|assistant)\b"
            r"|\bI(?:'m| am) (?:just )?an? (ai|language model|virtual assistant|chatbot)\b",
            re.IGNORECASE,
        ),
        "calling yourself an AI, a language model or an assistant",
        1.0,
    ),
    PatternRule(
        "service_filler",
        re.compile(
            r"\b(I hope (this|that) helps|feel free to|is there anything else|how (can|may) I (help|assist))\b",
            re.IGNORECASE,
        ),
        "customer-service phrases like 'I hope this helps' or 'feel free to'",
        0.8,
    ),
    PatternRule(
        "numbered_list",
        re.compile(r"^\s*\d+[.)]\s", re.MULTILINE),
        "numbered lists",
        0.7,
    ),
    PatternRule(
        "lecture_format",
        re.compile(r"\b(first(ly)?|to begin with)\b.*\b(second(ly)?|then)\b.*\b(finally|lastly)\b", re.IGNORECASE | re.DOTALL),
        "lecturing in first/second/finally steps",
        0.6,
    ),
    PatternRule(
        "summary_intro",
        re.compile(r"^\s*(in (conclusion|summary)|to sum up|overall)\s*[,:]", re.IGNORECASE | re.MULTILINE),
        "summing up with 'in conclusion' or 'overall'",
        0.6,
    ),
    PatternRule(
        "question_chain",
        re.compile(r"\?[^?]+\?[^?]+\?"),
        "asking several questions in one reply",
        0.6,
    ),
    PatternRule(
        "should_repetition",
        re.compile(r"\byou should\b.*\byou should\b", re.IGNORECASE | re.DOTALL),
        "repeating 'you should' advice",
        0.5,
    ),
    PatternRule(
        "care_loop",
        re.compile(r"\b(take care of yourself|remember to (rest|eat|drink water|sleep))\b", re.IGNORECASE),
        "reflexive reminders to rest or take care",
        0.5,
    ),
    PatternRule(
        "generic_question",
        re.compile(r"\b(what about you|how about you|and you)\s*\?", re.IGNORECASE),
        "bouncing the question back with 'what about you?'",
        0.4,
    ),
    PatternRule(
        "answer_plus_question",
        re.compile(r"[.!]\s+[^.!?\n]{1,80}\?\s*$"),
        "tacking a follow-up question onto every answer",
        0.3,
    ),
)


@dataclass(frozen=True)
class PatternCheck:
    violations: Tuple[str, ...] = ()
    max_severity: float = 0.0

    @property
    def clean(self) -> bool:
        return not self.violations


def check(reply: str) -> PatternCheck:
    """Names of every rule the reply trips, with the worst severity."""
    hits = [rule for rule in PROHIBITED_PATTERNS if rule.pattern.search(reply or "")]
    if not hits:
        return PatternCheck()
    return PatternCheck(tuple(r.name for r in hits), max(r.severity for r in hits))


# Cleanup for the structural patterns; the rest are only reported
_LIST_PREFIX_RE = re.compile(r"^([ \t]*)\d+[.)][ \t]+", re.MULTILINE)
_DISCLOSURE_SENTENCE_RE = re.compile(
    r"[^.!?\n]*\bI(?:'m| am) (?:just )?an? (?:ai|language model|virtual assistant|chatbot)\b[^.!?\n]*[.!?]?[ \t]*",
    re.IGNORECASE,
)
_DISCLOSURE_LEAD_RE = re.compile(
    r"\bas an? (?:ai|artificial intelligence|language model|assistant)\s*,\s*(\w?)",
    re.IGNORECASE,
)
_SUMMARY_LEAD_RE = re.compile(
    r"^([ \t]*)(?:in (?:conclusion|summary)|to sum up|overall)\s*[,:]\s*(\w?)",
    re.IGNORECASE | re.MULTILINE,
)


def _lead_at_start(m: "re.Match[str]") -> bool:
    before = m.string[: m.start()].rstrip(" \t")
    return not before or before[-1] in ".!?\n"


def sanitize(reply: str) -> str:
    """Strip list numbering, assistant disclosures and summary intros.

    Returns the original text when nothing would be left.
    """
    if not reply:
        return ""

    def _drop_disclosure_lead(m: "re.Match[str]") -> str:
        nxt = m.group(1)
        return nxt.upper() if _lead_at_start(m) else nxt

    text = _LIST_PREFIX_RE.sub(r"\1", reply)
    text = _DISCLOSURE_SENTENCE_RE.sub("", text)
    text = _DISCLOSURE_LEAD_RE.sub(_drop_disclosure_lead, text)
    text = _SUMMARY_LEAD_RE.sub(lambda m: m.group(1) + m.group(2).upper(), text)
    text = re.sub(r"[ \t]{2,}", " ", text).strip()
    return text or reply.strip()


def avoidance_lines() -> Tuple[str, ...]:
    return tuple(f"avoid: {rule.description}" for rule in PROHIBITED_PATTERNS)
