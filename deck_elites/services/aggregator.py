"""
deck_elites/services/aggregator.py

Worker-side evaluation of one job.

An aggregator owns all counters for a single job. It plays N games in
parallel, each with private copies of both decks and its own random stream,
and folds every finished game into the totals under one lock. The result is
produced only after all games finish; a failing game aborts the whole job.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from deck_elites.evolution.cards import HeroClass
from deck_elites.evolution.individual import OverallStatistics

from .messages import JobDescriptor, ResultRecord
from .simulator import GameResult, GameSimulator

logger = logging.getLogger(__name__)


class EvaluationAggregator:
    """
    Plays the games for one job and sums their statistics.

    Usage counts are pre-seeded with zero for every card in the deck so that
    cards never drawn are reported explicitly. Usage of cards outside the
    deck is ignored.
    """

    def __init__(
        self,
        job: JobDescriptor,
        opponent_class: HeroClass,
        opponent_deck: list[str],
        simulator: GameSimulator,
        num_games: int,
        max_threads: int = 8,
        seed: int | None = None,
    ):
        self.player_class = HeroClass.from_name(job.hero_class)
        self.player_deck = list(job.cards)
        self.opponent_class = opponent_class
        self.opponent_deck = list(opponent_deck)
        self.simulator = simulator
        self.num_games = num_games
        self.max_threads = max_threads
        self.seed = seed

        # Totals for all games of this job
        self._lock = threading.Lock()
        self.games_finished = 0
        self.win_count = 0
        self.usage_counts = {name: 0 for name in self.player_deck}
        self.total_health_difference = 0
        self.total_damage = 0
        self.total_turns = 0
        self.total_cards_drawn = 0
        self.total_mana_spent = 0
        self.total_strategy_alignment = 0

        self._has_run = False

    def record(self, result: GameResult) -> None:
        """Fold one finished game into the totals."""
        with self._lock:
            if result.did_win:
                self.win_count += 1

            for name, count in result.card_usage.items():
                if name in self.usage_counts:
                    self.usage_counts[name] += count

            self.total_health_difference += result.health_difference
            self.total_damage += result.damage_done
            self.total_turns += result.num_turns
            self.total_cards_drawn += result.cards_drawn
            self.total_mana_spent += result.mana_spent
            self.total_strategy_alignment += result.strategy_alignment
            self.games_finished += 1

    def _play_game(self, game_id: int, seed: np.random.SeedSequence) -> None:
        logger.debug(f"Starting game: {game_id}")

        result = self.simulator.play(
            self.player_class,
            list(self.player_deck),
            self.opponent_class,
            list(self.opponent_deck),
            np.random.default_rng(seed),
        )
        self.record(result)

        logger.debug(f"Finished game: {game_id}")

    def run(self) -> ResultRecord:
        """
        Play every game and return the summed result.

        Blocks until all games finish. Any exception raised by the simulator
        propagates and no result is produced.
        """
        if self._has_run:
            raise RuntimeError("An aggregator evaluates exactly one job")
        self._has_run = True

        seeds = np.random.SeedSequence(self.seed).spawn(self.num_games)
        with ThreadPoolExecutor(max_workers=self.max_threads) as pool:
            futures = [
                pool.submit(self._play_game, game_id, seed)
                for game_id, seed in enumerate(seeds)
            ]
            for future in futures:
                future.result()

        return self.to_result()

    def to_result(self) -> ResultRecord:
        with self._lock:
            overall = OverallStatistics(
                win_count=self.win_count,
                total_health_difference=self.total_health_difference,
                damage_done=self.total_damage,
                num_turns=self.total_turns,
                cards_drawn=self.total_cards_drawn,
                mana_spent=self.total_mana_spent,
                strategy_alignment=self.total_strategy_alignment,
            )
            return ResultRecord(
                card_names=list(self.player_deck),
                usage_counts=dict(self.usage_counts),
                overall=overall,
            )
