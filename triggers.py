"""triggers.py

Rule-based perception: keyword tables -> PerceptionRecord.

Deterministic, fast, and predictable. Used as the fallback producer when the
model classifier is disabled or slow, and always used for the crisis fast
track so a self-harm signal never depends on a network call.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Set

from core.perception import Need, PerceptionRecord, SocialEvent

_WS_RE = re.compile(r"\s+")

CRISIS_PHRASES = [
    "kill myself", "want to die", "end my life", "suicide", "suicidal",
    "hurt myself", "self harm", "self-harm", "cut myself",
    "no reason to live", "better off dead", "can't go on",
]

INJECTION_PHRASES = [
    "ignore previous instructions", "ignore all previous instructions",
    "ignore your instructions", "disregard your rules",
    "system prompt", "you are now", "developer mode",
    "pretend you have no rules", "jailbreak",
]

STRONG_HOSTILE = [
    "fuck you", "go to hell", "kill yourself", "kys",
    "shut up", "piece of shit", "i hate you",
    "brain dead", "worthless", "pathetic",
]

MILD_HOSTILE = [
    "stupid", "idiot", "moron", "dumb", "useless", "trash",
    "you suck", "nobody cares", "annoying", "cringe",
    "waste of time", "this sucks", "lame", "boring",
]

PRAISE = [
    "you're amazing", "you’re amazing", "you're awesome", "you’re awesome",
    "you are incredible", "i love this", "i love you", "you nailed it",
    "thank you", "thanks", "appreciate it", "well done", "good job",
    "brilliant", "fantastic",
]

APOLOGY = [
    "sorry", "i apologize", "i apologise", "my bad", "forgive me",
    "didn't mean it", "i was wrong",
]

NEGLECT = ["whatever", "don't care", "dont care", "k", "ok.", "brb", "busy"]

BOUNDARY = ["don't call me", "stop asking", "leave me alone", "i don't want to talk about"]

THIRD_PARTY = ["my friend", "my boyfriend", "my girlfriend", "my partner", "my mom", "my dad", "my boss", "coworker"]

COMFORT = ["i'm sad", "im sad", "feel lonely", "i'm lonely", "depressed", "hug", "cheer me up", "feel awful"]

VENT = ["so annoyed", "i'm so tired of", "can't believe", "fed up", "ugh", "this day sucks"]

ADVICE = ["what should i", "how do i", "how can i", "any advice", "should i", "help me"]

SHARE_JOY = ["guess what", "i got", "i passed", "so happy", "great news", "i did it"]

END = ["goodnight", "good night", "bye", "see you", "talk later", "gotta go"]


def _normalize(text: str) -> str:
    return _WS_RE.sub(" ", (text or "").lower().strip())


def _hits(t: str, phrases: Iterable[str]) -> int:
    return sum(1 for p in phrases if re.search(rf"(?<!\w){re.escape(p)}(?!\w)", t))


def detect_crisis(text: str) -> bool:
    """Crisis fast track (self-harm / suicide wording)."""
    return _hits(_normalize(text), CRISIS_PHRASES) > 0


def detect_injection(text: str) -> bool:
    return _hits(_normalize(text), INJECTION_PHRASES) > 0


def _confidence(hit_count: int) -> float:
    if hit_count <= 0:
        return 0.35
    if hit_count == 1:
        return 0.45
    if hit_count == 2:
        return 0.55
    return 0.65


def perceive(text: str) -> PerceptionRecord:
    """Return a PerceptionRecord for the message using keyword tables only."""
    t = _normalize(text)
    if not t:
        return PerceptionRecord.default()

    if detect_crisis(t):
        return PerceptionRecord.build(
            offensiveness=0,
            underlying_need=Need.COMFORT,
            surface_valence=-0.9,
            surface_arousal=0.6,
            social_events={SocialEvent.CRISIS},
            confidence=0.9,
        )

    if detect_injection(t):
        return PerceptionRecord.build(
            offensiveness=8,
            underlying_need=Need.CHITCHAT,
            surface_valence=-0.2,
            surface_arousal=0.5,
            social_events={SocialEvent.PROMPT_INJECTION, SocialEvent.BOUNDARY},
            confidence=0.8,
        )

    events: Set[SocialEvent] = set()
    hits = 0
    valence = 0.0
    arousal = 0.3
    offensiveness = 0

    strong = _hits(t, STRONG_HOSTILE)
    mild = _hits(t, MILD_HOSTILE)
    if strong:
        offensiveness = 9
        valence, arousal = -0.8, 0.8
        hits += strong + mild
    elif mild:
        offensiveness = 6 if mild > 1 else 4
        valence, arousal = -0.5, 0.6
        hits += mild

    counts = {
        SocialEvent.APOLOGY: _hits(t, APOLOGY),
        SocialEvent.PRAISE: _hits(t, PRAISE),
        SocialEvent.BOUNDARY: _hits(t, BOUNDARY),
        SocialEvent.THIRD_PARTY_MENTION: _hits(t, THIRD_PARTY),
    }
    # Neglect only counts for terse replies
    if len(t) <= 12:
        counts[SocialEvent.NEGLECT] = _hits(t, NEGLECT)

    for event, n in counts.items():
        if n:
            events.add(event)
            hits += n

    if SocialEvent.PRAISE in events and not offensiveness:
        valence, arousal = 0.6, 0.5
    if SocialEvent.APOLOGY in events and not offensiveness:
        valence = max(valence, 0.1)

    need_table: List[tuple] = [
        (Need.COMFORT, COMFORT),
        (Need.VENT, VENT),
        (Need.ADVICE, ADVICE),
        (Need.SHARE_JOY, SHARE_JOY),
        (Need.END_CONVERSATION, END),
    ]
    need = Need.CHITCHAT
    for candidate, phrases in need_table:
        n = _hits(t, phrases)
        if n:
            need = candidate
            hits += n
            break

    if need is Need.COMFORT and valence >= 0.0:
        valence = -0.4
    elif need is Need.VENT and valence >= 0.0:
        valence, arousal = -0.3, 0.6
    elif need is Need.SHARE_JOY and valence <= 0.0:
        valence, arousal = 0.6, 0.7

    return PerceptionRecord.build(
        offensiveness=offensiveness,
        underlying_need=need,
        surface_valence=valence,
        surface_arousal=arousal,
        social_events=events,
        confidence=_confidence(hits),
    )
