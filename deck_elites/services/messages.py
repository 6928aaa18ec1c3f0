"""
deck_elites/services/messages.py

Records exchanged between the orchestrator and workers.

A job carries the deck to evaluate; a result carries the summed statistics
of every game played with it. Both serialize to JSON, and both also have a
plain-text form (one field per line) used by single-process deployments.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from deck_elites.evolution.individual import (
    GAME_STAT_NAMES,
    OverallStatistics,
    StrategyStatistics,
)


@dataclass
class JobDescriptor:
    """
    A single evaluation request for a worker.

    The opponent deck and game count are fixed by the worker's own
    configuration and are not part of the job.
    """
    hero_class: str
    cards: list[str]
    created_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Serialize job to JSON."""
        return json.dumps({
            "hero_class": self.hero_class,
            "cards": self.cards,
            "created_at": self.created_at,
        })

    @classmethod
    def from_json(cls, data: str) -> "JobDescriptor":
        """Deserialize job from JSON."""
        d = json.loads(data)
        return cls(
            hero_class=d["hero_class"],
            cards=list(d["cards"]),
            created_at=d.get("created_at", time.time()),
        )

    def to_text(self) -> str:
        """Class name on line one, ``*``-joined card names on line two."""
        return f"{self.hero_class}\n{'*'.join(self.cards)}\n"

    @classmethod
    def from_text(cls, data: str) -> "JobDescriptor":
        lines = data.splitlines()
        return cls(
            hero_class=lines[0].strip(),
            cards=[name for name in lines[1].split("*") if name],
        )


@dataclass
class ResultRecord:
    """
    Result of evaluating one deck.

    Statistics are sums over all games; averaging is left to consumers.
    Usage counts are keyed by card name and include every card of the deck,
    zero for cards that were never drawn.
    """
    card_names: list[str]
    usage_counts: dict[str, int]
    overall: OverallStatistics
    strategies: list[StrategyStatistics] = field(default_factory=list)
    completed_at: float = field(default_factory=time.time)

    def to_json(self) -> str:
        """Serialize result to JSON."""
        return json.dumps({
            "card_names": self.card_names,
            "usage_counts": self.usage_counts,
            "overall": self.overall.to_dict(),
            "strategies": [s.to_dict() for s in self.strategies],
            "completed_at": self.completed_at,
        })

    @classmethod
    def from_json(cls, data: str) -> "ResultRecord":
        """Deserialize result from JSON."""
        d = json.loads(data)
        return cls(
            card_names=list(d["card_names"]),
            usage_counts={k: int(v) for k, v in d["usage_counts"].items()},
            overall=OverallStatistics.from_dict(d["overall"]),
            strategies=[StrategyStatistics.from_dict(s) for s in d.get("strategies", [])],
            completed_at=d.get("completed_at", time.time()),
        )

    def to_text(self) -> str:
        """
        Serialize to the plain-text result format.

        Line 1: ``*``-joined card names in deck order.
        Line 2: ``*``-joined usage counts aligned with line 1.
        Lines 3-9: win count, health difference, damage, turns,
        cards drawn, mana spent, strategy alignment.
        """
        lines = [
            "*".join(self.card_names),
            "*".join(str(self.usage_counts[name]) for name in self.card_names),
        ]
        lines.extend(str(getattr(self.overall, name)) for name in GAME_STAT_NAMES)
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, data: str) -> "ResultRecord":
        lines = data.splitlines()
        names = [name for name in lines[0].split("*") if name]
        counts = [int(c) for c in lines[1].split("*") if c]
        values = [int(line) for line in lines[2:2 + len(GAME_STAT_NAMES)]]
        return cls(
            card_names=names,
            usage_counts=dict(zip(names, counts)),
            overall=OverallStatistics(*values),
        )


def encode_message(message: Any, message_format: str) -> str:
    """Serialize a job or result in the given format ("json" or "text")."""
    if message_format == "json":
        return message.to_json()
    elif message_format == "text":
        return message.to_text()
    else:
        raise ValueError(f"Unknown message format: {message_format}")


def decode_message(cls: type, data: str, message_format: str) -> Any:
    """Deserialize a job or result of type ``cls``."""
    if message_format == "json":
        return cls.from_json(data)
    elif message_format == "text":
        return cls.from_text(data)
    else:
        raise ValueError(f"Unknown message format: {message_format}")
