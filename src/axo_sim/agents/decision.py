from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

from axo_sim.agents.perception import Perception
from axo_sim.agents.strategies import IDLE_STRATEGY_ID, Strategy, strategy_by_id
from axo_sim.genome.types import Trait

if TYPE_CHECKING:
    import aiohttp

    from axo_sim.llm.inference import InferenceAdapter

logger = logging.getLogger("axo_sim.decision")

MAX_PROMPT_STRATEGIES = 8
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_ACTION = re.compile(r"ACTION:\s*(\d+)", re.IGNORECASE)
_REASON = re.compile(r"REASON(?:ING)?:\s*(.+)", re.IGNORECASE)

_PROMPT_TRAITS = (
    Trait.RISK_APPETITE,
    Trait.ON_CHAIN_AFFINITY,
    Trait.COOPERATION_TENDENCY,
    Trait.SAVINGS_RATE,
    Trait.INFERENCE_QUALITY,
    Trait.CREATIVE_ABILITY,
    Trait.ANALYTICAL_ABILITY,
    Trait.HUMAN_DEPENDENCE,
    Trait.ADAPTATION_SPEED,
    Trait.STRESS_RESPONSE,
)


@dataclass
class Decision:
    strategy_id: str
    index: int
    """1-based position of the chosen strategy in the offered list."""
    reasoning: str
    confidence: float
    emotion: str
    cost: float
    raw_prompt: str = ""
    raw_response: str = ""
    latency_ms: float = 0.0
    used_fallback: bool = False
    fallback_reason: str = ""


def fallback_decision(reason: str) -> Decision:
    idle = strategy_by_id(IDLE_STRATEGY_ID)
    return Decision(
        strategy_id=idle.id,
        index=1,
        reasoning="decision provider unavailable, conserving resources",
        confidence=0.0,
        emotion="confused",
        cost=idle.cost,
        used_fallback=True,
        fallback_reason=reason,
    )


class DecisionProvider(Protocol):
    throttled: bool
    """True when each call reaches an external service and must respect the call interval."""

    async def decide(
        self,
        perception: Perception,
        strategies: list[Strategy],
        session: "aiohttp.ClientSession | None" = None,
    ) -> Decision: ...


async def with_fallback(
    call: Awaitable[Decision],
    fallback: Callable[[str], Decision] = fallback_decision,
    timeout_s: float | None = None,
) -> Decision:
    """Await a decision; any timeout or provider error yields ``fallback(reason)``."""
    try:
        return await asyncio.wait_for(call, timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning("Decision timed out after %.1fs, using fallback", timeout_s or 0.0)
        return fallback("timeout")
    except Exception as exc:
        logger.warning("Decision provider failed: %s, using fallback", exc.__class__.__name__)
        return fallback(f"error:{exc.__class__.__name__}")


# ======================================================================
#  PROMPT
# ======================================================================

def _format_runway(runway: float) -> str:
    return "unlimited" if math.isinf(runway) else f"{runway:.1f} ticks"


def build_prompt(perception: Perception, strategies: list[Strategy]) -> str:
    p = perception
    traits = "\n".join(
        f"- {t.value}: {p.expression.get(t) * 100:.0f}%" for t in _PROMPT_TRAITS
    )
    actions = "\n".join(
        f"- {a.action}: {'success' if a.success else 'failure'} ({a.cost:.3f} USDC)"
        for a in p.recent_actions
    ) or "none"
    offered = "\n".join(
        f"{i}. [{s.id}] {s.name} | risk {s.risk_level * 100:.0f}% | "
        f"cost {s.cost:.3f} USDC | {s.description}"
        for i, s in enumerate(strategies[:MAX_PROMPT_STRATEGIES], start=1)
    )
    success = (
        "unknown" if p.recent_success_rate is None else f"{p.recent_success_rate * 100:.0f}%"
    )
    emergency = (
        "\nEMERGENCY MODE: balance critically low.\n" if p.mode in {"emergency", "dormant"} else ""
    )
    memories = json.dumps(p.memories, ensure_ascii=True)

    return f"""
You are {p.name} ({p.agent_id}), an autonomous agent living on a simulated
on-chain economy. Every tick costs money; if your balance runs out you die.
Your behavioral tendencies come from your genome and you cannot change them.

Return only one valid JSON object with keys:
action (integer number of one listed action),
reasoning (one short English sentence),
confidence (integer 0-100),
emotion (one word describing how you feel).

=== IDENTITY ===
- age: {p.age} ticks
- generation: {p.generation}
- stage: {p.stage}

=== STATE ===
- liquid: {p.liquid:.2f} USDC
- locked in positions: {p.locked:.2f} USDC
- daily burn: {p.daily_burn:.3f} USDC
- runway: {_format_runway(p.runway)}
- mode: {p.mode}
- stress: {p.stress_level:.2f}{emergency}

=== TRAITS ===
{traits}

=== ENVIRONMENT ===
- other agents: {p.population.size}
- average balance: {p.population.average_balance:.2f} USDC
- recent deaths: {p.population.recent_deaths}
- active event: {p.population.active_shock or "none"}
- your recent success rate: {success}

=== RECENT ACTIONS ===
{actions}

=== MEMORY ===
{memories}

=== ACTIONS YOU CAN TAKE ===
{offered}
""".strip()


# ======================================================================
#  PARSING
# ======================================================================

def _clamp_confidence(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = 50.0
    return max(0.0, min(100.0, value)) / 100.0


def _choose(index: int, strategies: list[Strategy]) -> Strategy:
    if 1 <= index <= len(strategies):
        return strategies[index - 1]
    return strategy_by_id(IDLE_STRATEGY_ID)


def parse_decision(text: str, strategies: list[Strategy]) -> Decision:
    """Read a JSON decision, or the legacy ``ACTION: n | REASON: ...`` form.

    An index outside the offered list resolves to idle conservation.
    """
    cleaned = _FENCE.sub("", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            try:
                index = int(data.get("action", 1))
            except (TypeError, ValueError):
                index = 1
            strategy = _choose(index, strategies)
            return Decision(
                strategy_id=strategy.id,
                index=index,
                reasoning=str(data.get("reasoning") or "no reasoning provided")[:500],
                confidence=_clamp_confidence(data.get("confidence", 50)),
                emotion=str(data.get("emotion") or "unknown")[:32],
                cost=strategy.cost,
                raw_response=text,
            )

    match = _ACTION.search(text)
    index = int(match.group(1)) if match else 1
    strategy = _choose(index, strategies)
    reason = _REASON.search(text)
    return Decision(
        strategy_id=strategy.id,
        index=index,
        reasoning=reason.group(1).strip() if reason else text[:200],
        confidence=0.5,
        emotion="unknown",
        cost=strategy.cost,
        raw_response=text,
    )


# ======================================================================
#  PROVIDERS
# ======================================================================

class IdleDecisionProvider:
    """Provider used when no language model is configured."""

    throttled = False

    async def decide(
        self,
        perception: Perception,
        strategies: list[Strategy],
        session: "aiohttp.ClientSession | None" = None,
    ) -> Decision:
        return fallback_decision("llm_disabled")


class LLMDecisionEngine:
    throttled = True

    def __init__(
        self,
        adapter: "InferenceAdapter",
        timeout_s: float | None = None,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        self.adapter = adapter
        self.timeout_s = timeout_s
        self.semaphore = semaphore

    async def decide(
        self,
        perception: Perception,
        strategies: list[Strategy],
        session: "aiohttp.ClientSession | None" = None,
    ) -> Decision:
        if not strategies:
            return fallback_decision("no_strategies")
        prompt = build_prompt(perception, strategies)
        logger.debug("PROMPT agent=%s:\n%s", perception.agent_id, prompt)
        raw, latency_ms = await self.adapter.async_generate(
            prompt, timeout_s=self.timeout_s, semaphore=self.semaphore, session=session
        )
        decision = parse_decision(raw, strategies[:MAX_PROMPT_STRATEGIES])
        logger.info(
            "DECISION agent=%-16s latency=%.0fms action=%s confidence=%.2f",
            perception.agent_id,
            latency_ms,
            decision.strategy_id,
            decision.confidence,
        )
        return replace(decision, raw_prompt=prompt, latency_ms=latency_ms)
