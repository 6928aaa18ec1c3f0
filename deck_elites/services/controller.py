"""
deck_elites/services/controller.py

Search orchestrator service.

The orchestrator drives the whole MAP-Elites search:
1. Discovers workers that announce themselves
2. Dispatches one individual per idle worker (random first, then mutants)
3. Collects finished results and attaches them to their individuals
4. Inserts evaluated individuals into the feature map and logs them
5. Stops when the evaluation budget is reached

Everything happens on one thread, once per poll cycle. Workers are only
reached through the channel; there is no timeout on an outstanding job.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from deck_elites.evolution.archive import FeatureBounds, create_feature_map
from deck_elites.evolution.cards import Card, HeroClass, load_card_pool
from deck_elites.evolution.individual import DeckSpace, Individual

from .channel import WorkerChannel, create_channel
from .config import SearchConfig, load_config
from .logs import FrequentMapLog, RunningIndividualLog
from .messages import JobDescriptor, ResultRecord

logger = logging.getLogger(__name__)


INDIVIDUAL_LOG_FILENAME = "individual_log.csv"
CHAMPION_LOG_FILENAME = "champion_log.csv"
FITTEST_LOG_FILENAME = "fittest_log.csv"
ELITE_MAP_FILENAME = "elite_map_log.csv"


class SearchState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    TERMINATED = "terminated"


class SearchOrchestrator:
    """
    Orchestrator for a distributed MAP-Elites search.

    Workers move between an idle queue and a running queue. A worker is
    running from the moment its job is written until its result is read.
    """

    def __init__(
        self,
        config: SearchConfig,
        channel: WorkerChannel | None = None,
        card_pool: list[Card] | None = None,
    ):
        self.config = config
        self.state = SearchState.INITIALIZING
        self.rng = np.random.default_rng(config.search.seed)

        # Search space
        hero_class = HeroClass.from_name(config.deckspace.hero_class)
        if card_pool is None:
            card_pool = load_card_pool(
                config.deckspace.card_pool,
                hero_class,
                config.deckspace.card_sets,
            )
        self.deck_space = DeckSpace(hero_class, card_pool, config.deckspace.deck_size)

        # Feature map
        self.feature_names = config.feature_names
        bounds = [
            FeatureBounds(f.name, f.min_value, f.max_value)
            for f in config.map.features
        ]
        self.feature_map = create_feature_map(
            config.map.type,
            bounds,
            start_size=config.map.start_size,
            end_size=config.map.end_size,
            num_to_evaluate=config.search.num_to_evaluate,
            seed=int(self.rng.integers(2**31)),
        )

        # Coordination with workers
        self.channel = channel or create_channel(
            backend=config.paths.backend,
            work_dir=config.paths.work_dir,
            message_format=config.paths.message_format,
            redis_url=config.paths.redis_url,
        )

        # Worker bookkeeping
        self.idle_workers: deque[int] = deque()
        self.running_workers: deque[int] = deque()
        self.individual_stable: dict[int, Individual | None] = {}

        self.individuals_evaluated = 0
        self.individuals_dispatched = 0
        self.max_wins = 0
        self.max_fitness: int | None = None

        # Status
        self.running = False
        self.start_time: float | None = None

        self._init_logs()

        logger.info(
            f"Orchestrator initialized: {hero_class.value}, "
            f"{len(card_pool)} cards, features {self.feature_names}"
        )

    def _init_logs(self) -> None:
        log_dir = Path(self.config.paths.log_dir)
        self.individual_log = RunningIndividualLog(
            log_dir / INDIVIDUAL_LOG_FILENAME, self.feature_names
        )
        self.champion_log = RunningIndividualLog(
            log_dir / CHAMPION_LOG_FILENAME, self.feature_names
        )
        self.fittest_log = RunningIndividualLog(
            log_dir / FITTEST_LOG_FILENAME, self.feature_names
        )
        self.map_log = FrequentMapLog(log_dir / ELITE_MAP_FILENAME, self.feature_map)

    @property
    def done(self) -> bool:
        return self.individuals_evaluated >= self.config.search.num_to_evaluate

    def register_workers(self) -> int:
        """Register newly announced workers as idle. Returns how many were added."""
        added = 0
        for worker_id in self.channel.discover_workers():
            if worker_id in self.individual_stable:
                logger.warning(f"Worker {worker_id} announced itself twice, ignoring")
                continue
            self.individual_stable[worker_id] = None
            self.idle_workers.append(worker_id)
            added += 1
        return added

    def can_dispatch(self) -> bool:
        """
        Whether another job may be sent now.

        After the initial random population is out, mutation needs a
        non-empty archive, so dispatch waits for the first completed result.
        """
        return not (
            self.individuals_dispatched >= self.config.search.initial_population
            and self.individuals_evaluated == 0
        )

    def next_individual(self) -> Individual:
        """Choose what to evaluate next: random at first, then a mutated elite."""
        if self.individuals_dispatched < self.config.search.initial_population:
            return self.deck_space.random_individual(self.rng)

        parent = self.feature_map.get_random_elite()
        return self.deck_space.mutate(parent, self.rng)

    def dispatch_jobs(self) -> int:
        """Send work to idle workers. Returns number of jobs sent."""
        sent = 0
        while self.idle_workers and self.can_dispatch():
            worker_id = self.idle_workers.popleft()
            individual = self.next_individual()

            job = JobDescriptor(
                hero_class=individual.hero_class.value,
                cards=individual.card_names(),
            )
            self.channel.send_job(worker_id, job)

            self.individual_stable[worker_id] = individual
            self.running_workers.append(worker_id)
            self.individuals_dispatched += 1
            sent += 1
            logger.info(f"Starting worker: {worker_id}")

        return sent

    def collect_results(self) -> int:
        """
        Check every running worker once and absorb finished results.

        Returns number of individuals evaluated during this call.
        """
        finished = 0
        for _ in range(len(self.running_workers)):
            worker_id = self.running_workers.popleft()

            if not self.channel.is_job_done(worker_id):
                self.running_workers.append(worker_id)
                continue

            logger.info(f"Worker done: {worker_id}")
            result = self.channel.receive_result(worker_id)
            individual = self.individual_stable[worker_id]

            self.receive_results(individual, result)
            self.feature_map.add(individual)

            self.individual_stable[worker_id] = None
            self.idle_workers.append(worker_id)
            self.individuals_evaluated += 1
            self.map_log.update_log()
            finished += 1

        return finished

    def receive_results(self, individual: Individual, result: ResultRecord) -> None:
        """Attach a worker's result to its individual and log it."""
        individual.attach_result(
            self.individuals_evaluated,
            result,
            fitness_stat=self.config.search.fitness,
            feature_names=self.feature_names,
        )

        stats = individual.overall
        logger.info(
            f"Eval ({individual.id}): fitness {individual.fitness}, "
            f"features {individual.features}, "
            f"wins {stats.win_count}, "
            f"health diff {stats.total_health_difference}, "
            f"damage {stats.damage_done}, turns {stats.num_turns}, "
            f"drawn {stats.cards_drawn}, mana {stats.mana_spent}, "
            f"alignment {stats.strategy_alignment}"
        )
        for i, strategy in enumerate(individual.strategies):
            logger.info(
                f"Eval ({individual.id}) strategy {i}: "
                f"wins {strategy.win_count}, alignment {strategy.alignment}"
            )

        hit_max_wins = stats.win_count > self.max_wins
        hit_max_fitness = self.max_fitness is None or individual.fitness > self.max_fitness
        self.max_wins = max(self.max_wins, stats.win_count)
        if hit_max_fitness:
            self.max_fitness = individual.fitness

        self.individual_log.log_individual(individual)
        if hit_max_wins:
            self.champion_log.log_individual(individual)
        if hit_max_fitness:
            self.fittest_log.log_individual(individual)

    def step(self) -> dict[str, int]:
        """
        Execute one poll cycle, without sleeping.

        Returns counts for this cycle.
        """
        registered = self.register_workers()
        dispatched = self.dispatch_jobs()
        evaluated = self.collect_results()

        return {
            "registered": registered,
            "dispatched": dispatched,
            "evaluated": evaluated,
        }

    def run(self) -> dict[str, Any]:
        """
        Run the search until the evaluation budget is reached.

        Returns final statistics.
        """
        self.state = SearchState.RUNNING
        self.running = True
        self.start_time = time.time()

        self.channel.open_search(["MAP Elites", self.config.source or ""])
        logger.info("Begin search...")

        try:
            while self.running and not self.done:
                self.step()
                if not self.done:
                    time.sleep(self.config.search.poll_interval)

        except KeyboardInterrupt:
            logger.info("Search interrupted by user")

        finally:
            # Let the workers know that we are done
            self.channel.close_search()
            self.running = False
            self.state = SearchState.TERMINATED

        total_time = time.time() - self.start_time
        best, best_fitness = self.feature_map.get_best()

        final_stats = {
            "total_evaluations": self.individuals_evaluated,
            "total_dispatched": self.individuals_dispatched,
            "total_time": total_time,
            "best_fitness": best_fitness,
            "best_deck": best.card_names() if best else None,
            **self.feature_map.get_statistics(),
        }

        logger.info(
            f"Search complete: {self.individuals_evaluated} evaluations, "
            f"best fitness: {best_fitness}"
        )
        return final_stats

    def stop(self) -> None:
        """Stop the search after the current poll cycle."""
        self.running = False
        logger.info("Stopping search...")

    def get_status(self) -> dict[str, Any]:
        """Get current orchestrator status."""
        elapsed = 0.0
        if self.start_time:
            elapsed = time.time() - self.start_time

        return {
            "state": self.state.value,
            "individuals_evaluated": self.individuals_evaluated,
            "individuals_dispatched": self.individuals_dispatched,
            "idle_workers": len(self.idle_workers),
            "running_workers": len(self.running_workers),
            "num_groups": self.feature_map.num_groups,
            "archive_size": len(self.feature_map.elite_map),
            "elapsed_time": elapsed,
        }


def run_search(argv: list[str] | None = None) -> None:
    """
    Run the orchestrator as a standalone process.

    Usage: deck-elites-search CONFIG
    """
    import argparse
    import signal

    parser = argparse.ArgumentParser(description="Deck MAP-Elites search orchestrator")
    parser.add_argument("config", help="Path to the search configuration (YAML)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    orchestrator = SearchOrchestrator(load_config(args.config))

    # Handle signals for graceful shutdown
    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        orchestrator.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    orchestrator.run()


if __name__ == "__main__":
    run_search()
