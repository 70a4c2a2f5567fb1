from __future__ import annotations

from typing import Protocol


class Wallet(Protocol):
    def get_balance(self, agent_id: str) -> float: ...

    def set_balance(self, agent_id: str, amount: float) -> None: ...


class InMemoryWallet:
    """Liquid balances keyed by agent id. Nothing here settles on a real chain."""

    def __init__(self, balances: dict[str, float] | None = None) -> None:
        self._balances: dict[str, float] = dict(balances or {})

    def get_balance(self, agent_id: str) -> float:
        return self._balances.get(agent_id, 0.0)

    def set_balance(self, agent_id: str, amount: float) -> None:
        if amount < 0:
            raise ValueError(f"negative balance for {agent_id}: {amount}")
        self._balances[agent_id] = amount

    def remove(self, agent_id: str) -> float:
        return self._balances.pop(agent_id, 0.0)

    def as_dict(self) -> dict[str, float]:
        return dict(self._balances)
