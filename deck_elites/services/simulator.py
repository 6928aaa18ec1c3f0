"""
deck_elites/services/simulator.py

Game simulation interface used by workers.

The rules engine that decides a match is an external collaborator; workers
only depend on the GameSimulator contract. RandomGameSimulator is a cheap
stochastic stand-in for smoke runs and local testing of the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field

import numpy as np

from deck_elites.evolution.cards import HeroClass


@dataclass
class GameResult:
    """Outcome and statistics of one simulated game, from the player's side."""
    did_win: bool
    card_usage: dict[str, int] = field(default_factory=dict)
    health_difference: int = 0
    damage_done: int = 0
    num_turns: int = 0
    cards_drawn: int = 0
    mana_spent: int = 0
    strategy_alignment: int = 0


class GameSimulator(ABC):
    """
    Abstract base for game simulators.

    A simulator plays one game between two decks. It may freely modify the
    deck lists it is given; callers pass private copies.
    """

    @abstractmethod
    def play(
        self,
        player_class: HeroClass,
        player_deck: list[str],
        opponent_class: HeroClass,
        opponent_deck: list[str],
        rng: np.random.Generator,
    ) -> GameResult:
        """
        Play one game.

        Args:
            player_class: Hero class of the deck under evaluation
            player_deck: Card names of the deck under evaluation
            opponent_class: Hero class of the fixed opponent
            opponent_deck: Card names of the fixed opponent
            rng: Generator private to this game

        Returns:
            GameResult for the player
        """
        pass


class RandomGameSimulator(GameSimulator):
    """
    Plays no real rules; draws plausible statistics at random.

    Card usage counts the cards drawn, so usage always sums to cards_drawn.
    """

    def __init__(self, starting_hand: int = 3, max_turns: int = 20, max_health: int = 30):
        self.starting_hand = starting_hand
        self.max_turns = max_turns
        self.max_health = max_health

    def play(
        self,
        player_class: HeroClass,
        player_deck: list[str],
        opponent_class: HeroClass,
        opponent_deck: list[str],
        rng: np.random.Generator,
    ) -> GameResult:
        rng.shuffle(player_deck)
        rng.shuffle(opponent_deck)

        num_turns = int(rng.integers(5, self.max_turns + 1))
        cards_drawn = min(len(player_deck), self.starting_hand + num_turns)
        usage = Counter(player_deck[:cards_drawn])

        mana_spent = sum(
            int(min(turn, 10) * rng.uniform(0.5, 1.0))
            for turn in range(1, num_turns + 1)
        )

        damage_done = int(rng.integers(0, self.max_health + 1))
        damage_taken = int(rng.integers(0, self.max_health + 1))

        return GameResult(
            did_win=damage_done > damage_taken,
            card_usage=dict(usage),
            health_difference=damage_done - damage_taken,
            damage_done=damage_done,
            num_turns=num_turns,
            cards_drawn=cards_drawn,
            mana_spent=mana_spent,
            strategy_alignment=int(rng.integers(0, 101)),
        )
