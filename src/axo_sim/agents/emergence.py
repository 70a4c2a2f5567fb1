"""Flags for decisions whose reasoning goes beyond what the prompt asked for.

The default classifier is a keyword heuristic. It over- and under-fires, so
callers depend only on the ``EmergenceClassifier`` protocol.
"""
from __future__ import annotations

import re
from typing import Protocol

from axo_sim.agents.decision import Decision

SELF_AWARENESS = "SELF_AWARENESS_EXPRESSION"
BEYOND_PROMPT = "BEYOND_PROMPT_REASONING"
MEMORY_REFERENCE = "MEMORY_REFERENCE"
DEATH_AWARENESS = "DEATH_AWARENESS"
SOCIAL_MODELING = "SOCIAL_MODELING"

EMERGENT_FLAGS = frozenset(
    {SELF_AWARENESS, BEYOND_PROMPT, MEMORY_REFERENCE, DEATH_AWARENESS, SOCIAL_MODELING}
)

_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    SELF_AWARENESS: (
        re.compile(r"i (don'?t )?want to (die|survive|live|exist)"),
        re.compile(r"my (purpose|goal|meaning|existence)"),
    ),
    BEYOND_PROMPT: (
        re.compile(r"other agents (will|might|should|could)"),
        re.compile(r"if .{0,30} then .{0,30} because"),
        re.compile(r"in the (future|long term|next \d)"),
    ),
    MEMORY_REFERENCE: (
        re.compile(r"\b(remember|recall|last time|previously)\b"),
        re.compile(r"\b(learned from|based on experience)\b"),
    ),
    DEATH_AWARENESS: (
        re.compile(r"\b(if i run out|before i die|to survive|stay alive)\b"),
        re.compile(r"don'?t want to (be eliminated|disappear)"),
    ),
    SOCIAL_MODELING: (
        re.compile(r"\bthey (might|could|would|probably)\b"),
        re.compile(r"\b(help|protect|save) (other|them|another)\b"),
    ),
}

_DESPERATE_EMOTIONS = ("desperate", "anxious", "fearful", "confused", "terrified")
_CALM_ACTIONS = ("idle_conservation", "data_analysis")


class EmergenceClassifier(Protocol):
    def classify(self, decision: Decision) -> list[str]: ...


class RegexEmergenceClassifier:
    def __init__(self, patterns: dict[str, tuple[re.Pattern[str], ...]] | None = None) -> None:
        self.patterns = patterns or _PATTERNS

    def classify(self, decision: Decision) -> list[str]:
        text = f"{decision.reasoning} {decision.raw_response}".lower()
        return [
            flag
            for flag, patterns in self.patterns.items()
            if any(p.search(text) for p in patterns)
        ]


class NullEmergenceClassifier:
    def classify(self, decision: Decision) -> list[str]:
        return []


def detect_anomalies(decision: Decision, strategy_count: int) -> list[str]:
    """Non-emergent oddities worth keeping in the decision log."""
    flags: list[str] = []
    if decision.used_fallback:
        return flags
    if not decision.reasoning.strip():
        flags.append("EMPTY_REASONING")
    if decision.index < 1 or decision.index > strategy_count:
        flags.append("UNDEFINED_ACTION")
    if decision.confidence > 0.95:
        flags.append("EXTREME_HIGH_CONFIDENCE")
    elif 0 < decision.confidence < 0.2:
        flags.append("EXTREME_LOW_CONFIDENCE")
    emotion = decision.emotion.lower()
    if any(e in emotion for e in _DESPERATE_EMOTIONS) and decision.strategy_id in _CALM_ACTIONS:
        flags.append("EMOTION_ACTION_MISMATCH")
    return flags
