from __future__ import annotations

import random

from axo_sim.genome.types import ExpressionResult

NAME_POOLS: dict[str, tuple[str, ...]] = {
    "analytical": ("Descartes", "Turing", "Leibniz", "Russell", "Hilbert", "Shannon"),
    "creative": ("DaVinci", "VanGogh", "Mozart", "LiBai", "DuFu", "Picasso"),
    "social": ("Confucius", "Socrates", "Gandhi", "King", "Mandela", "Teresa"),
    "risk_taker": ("Columbus", "Magellan", "Armstrong", "Musk", "Bezos", "Son"),
    "conservative": ("Buffett", "Graham", "Munger", "Zeng", "Zhuge", "Sima"),
    "hybrid": ("ZhangHeng", "Archimedes", "Newton", "Einstein", "Feynman", "Curie"),
}

_ROMAN = ("", " II", " III", " IV", " V", " VI", " VII", " VIII", " IX", " X")


def name_category(expression: ExpressionResult) -> str:
    if expression.analytical_ability > 0.7:
        return "analytical"
    if expression.creative_ability > 0.7:
        return "creative"
    if expression.cooperation_tendency > 0.7:
        return "social"
    if expression.risk_appetite > 0.7:
        return "risk_taker"
    if expression.risk_appetite < 0.3:
        return "conservative"
    return "hybrid"


class NameRegistry:
    """Agent names drawn by dominant trait; repeated names get a numeral suffix."""

    def __init__(self, rng: random.Random) -> None:
        self.rng = rng
        self._names: dict[str, str] = {}
        self._uses: dict[str, int] = {}

    def assign(self, agent_id: str, expression: ExpressionResult) -> str:
        if agent_id in self._names:
            return self._names[agent_id]
        base = self.rng.choice(NAME_POOLS[name_category(expression)])
        uses = self._uses.get(base, 0)
        self._uses[base] = uses + 1
        suffix = _ROMAN[uses] if uses < len(_ROMAN) else f" #{uses + 1}"
        name = base + suffix
        self._names[agent_id] = name
        return name

    def get(self, agent_id: str) -> str:
        return self._names.get(agent_id, f"Bot-{agent_id[-6:]}")

    def restore(self, agent_id: str, name: str) -> None:
        self._names[agent_id] = name
        base = name.split(" ")[0]
        self._uses[base] = self._uses.get(base, 0) + 1
