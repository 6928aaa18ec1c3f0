"""
deck_elites/evolution/individual.py

Individuals and the deck space they are drawn from.

An individual is a deck (the genotype) plus the statistics gathered by
playing it (the phenotype). Individuals are created unevaluated, either at
random or by mutating an archive elite, and become evaluated exactly once
when a worker's result comes back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from .cards import Card, HeroClass

if TYPE_CHECKING:
    from deck_elites.services.messages import ResultRecord


GAME_STAT_NAMES = (
    "win_count",
    "total_health_difference",
    "damage_done",
    "num_turns",
    "cards_drawn",
    "mana_spent",
    "strategy_alignment",
)
DECK_STAT_NAMES = (
    "deck_mana_sum",
    "num_minion_cards",
    "num_spell_cards",
    "dust",
    "deck_mana_variance",
)
STAT_NAMES = GAME_STAT_NAMES + DECK_STAT_NAMES


def normalize_stat_name(name: str) -> str:
    """Map ``TotalHealthDifference`` and ``total_health_difference`` to the same key."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name.strip()).lower()


@dataclass
class OverallStatistics:
    """Summed statistics over every game played for one evaluation."""
    win_count: int = 0
    total_health_difference: int = 0
    damage_done: int = 0
    num_turns: int = 0
    cards_drawn: int = 0
    mana_spent: int = 0
    strategy_alignment: int = 0

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in GAME_STAT_NAMES}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OverallStatistics":
        return cls(**{name: int(data.get(name, 0)) for name in GAME_STAT_NAMES})


@dataclass
class StrategyStatistics:
    """Results against one opponent strategy."""
    win_count: int = 0
    alignment: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"win_count": self.win_count, "alignment": self.alignment}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StrategyStatistics":
        return cls(
            win_count=int(data.get("win_count", 0)),
            alignment=int(data.get("alignment", 0)),
        )


@dataclass
class Individual:
    """
    One candidate deck and, once evaluated, its results.

    The id reflects completion order, not creation order, and is only
    assigned when the evaluation result arrives.
    """

    cards: list[Card]
    hero_class: HeroClass

    id: int | None = None
    fitness: int | None = None
    features: tuple[int, ...] | None = None

    overall: OverallStatistics | None = None
    strategies: list[StrategyStatistics] = field(default_factory=list)
    card_usage: dict[str, int] = field(default_factory=dict)

    @property
    def evaluated(self) -> bool:
        return self.overall is not None

    def card_names(self) -> list[str]:
        return [card.name for card in self.cards]

    def get_stat_by_name(self, name: str) -> int:
        """
        Read a statistic by name.

        Game statistics require an evaluated individual; deck statistics are
        derived from the cards alone.
        """
        key = normalize_stat_name(name)

        if key in GAME_STAT_NAMES:
            if self.overall is None:
                raise ValueError(f"Statistic {name} requires an evaluated individual")
            return getattr(self.overall, key)

        if key == "deck_mana_sum":
            return sum(card.cost for card in self.cards)
        if key == "num_minion_cards":
            return sum(1 for card in self.cards if card.card_type == "minion")
        if key == "num_spell_cards":
            return sum(1 for card in self.cards if card.card_type == "spell")
        if key == "dust":
            return sum(card.dust for card in self.cards)
        if key == "deck_mana_variance":
            if not self.cards:
                return 0
            return int(np.var([card.cost for card in self.cards]))

        raise KeyError(f"Unknown statistic: {name}")

    def attach_result(
        self,
        individual_id: int,
        result: ResultRecord,
        fitness_stat: str,
        feature_names: list[str],
    ) -> None:
        """
        Record an evaluation result and derive fitness and features.

        An individual is evaluated exactly once; later calls raise.
        """
        if self.evaluated:
            raise RuntimeError(f"Individual {self.id} is already evaluated")

        self.id = individual_id
        self.overall = result.overall
        self.strategies = list(result.strategies)
        self.card_usage = dict(result.usage_counts)

        self.fitness = self.get_stat_by_name(fitness_stat)
        self.features = tuple(self.get_stat_by_name(name) for name in feature_names)

    def __str__(self) -> str:
        return "*".join(self.card_names())


@dataclass
class DeckSpace:
    """
    The set of legal decks for one hero class.

    Generation and mutation respect per-card copy limits
    (one for legendaries, two otherwise).
    """

    hero_class: HeroClass
    card_pool: list[Card]
    deck_size: int = 30
    mutation_p: float = 0.5  # Geometric parameter for the number of swapped slots

    def __post_init__(self):
        capacity = sum(card.max_copies for card in self.card_pool)
        if capacity < self.deck_size:
            raise ValueError(
                f"Card pool allows at most {capacity} cards, "
                f"cannot build a {self.deck_size} card deck"
            )

    def random_individual(self, rng: np.random.Generator) -> Individual:
        """Draw a deck uniformly from the available card copies."""
        copies = [card for card in self.card_pool for _ in range(card.max_copies)]
        picks = rng.choice(len(copies), size=self.deck_size, replace=False)
        cards = sorted((copies[i] for i in picks), key=lambda c: (c.cost, c.name))
        return Individual(cards=cards, hero_class=self.hero_class)

    def mutate(self, parent: Individual, rng: np.random.Generator) -> Individual:
        """
        Return a new unevaluated individual with some of the parent's slots replaced.

        The number of replaced slots is geometric (at least one). The child
        shares no mutable state with the parent.
        """
        cards = list(parent.cards)
        num_swaps = min(int(rng.geometric(self.mutation_p)), len(cards))

        for _ in range(num_swaps):
            slot = int(rng.integers(len(cards)))
            removed = cards.pop(slot)
            candidates = [
                card for card in self.card_pool
                if card != removed and cards.count(card) < card.max_copies
            ]
            if not candidates:
                candidates = [removed]
            cards.insert(slot, candidates[int(rng.integers(len(candidates)))])

        return Individual(cards=cards, hero_class=parent.hero_class)
