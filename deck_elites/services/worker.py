"""
deck_elites/services/worker.py

Evaluation worker service.

Workers perform the computationally expensive part of the search:
1. Announce themselves to the orchestrator
2. Wait for a job while the search is active
3. Play N games of the job's deck against a fixed opponent
4. Publish the summed statistics

Each worker handles one job at a time. Add more workers for a faster search.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

import numpy as np

from deck_elites.evolution.cards import read_deck_file

from .aggregator import EvaluationAggregator
from .channel import WorkerChannel, create_channel
from .simulator import GameSimulator, RandomGameSimulator

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """Configuration for evaluation workers."""
    # Worker identity
    node_id: int

    # Evaluation
    num_games: int = 200
    opponent_class: str = "warrior"
    starter_deck_template: str = "resources/starter_decks/starter_{}.txt"
    max_threads: int = 8  # Games played in parallel

    # Channel
    work_dir: str = "."
    message_format: str = "json"
    backend: str = "filesystem"
    redis_url: str = "redis://localhost:6379"

    # Worker behavior
    poll_interval: float = 5.0  # Seconds between checks for a new job
    settle_delay: float = 1.0  # Seconds to wait after a job appears

    # Random seed (None = fresh entropy)
    seed: int | None = None

    @classmethod
    def from_env(cls, node_id: int, num_games: int, opponent_class: str) -> WorkerConfig:
        """Create config from the three CLI values plus environment variables."""
        seed = os.environ.get("DECK_ELITES_SEED")
        return cls(
            node_id=node_id,
            num_games=num_games,
            opponent_class=opponent_class,
            starter_deck_template=os.environ.get(
                "DECK_ELITES_STARTER_DECKS", "resources/starter_decks/starter_{}.txt"
            ),
            max_threads=int(os.environ.get("DECK_ELITES_MAX_THREADS", "8")),
            work_dir=os.environ.get("DECK_ELITES_WORK_DIR", "."),
            message_format=os.environ.get("DECK_ELITES_MESSAGE_FORMAT", "json"),
            backend=os.environ.get("DECK_ELITES_BACKEND", "filesystem"),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379"),
            seed=int(seed) if seed is not None else None,
        )


def configure_thread_pool(max_threads: int) -> bool:
    """Check that the game pool can be sized as requested."""
    if max_threads < 1:
        logger.error(f"Failed to configure game pool with {max_threads} threads")
        return False
    return True


class EvaluationWorker:
    """
    Worker that evaluates decks sent by the orchestrator.

    Runs until the search-active marker disappears.
    """

    def __init__(
        self,
        config: WorkerConfig,
        simulator: GameSimulator | None = None,
        channel: WorkerChannel | None = None,
    ):
        self.config = config
        self.worker_id = config.node_id

        self.channel = channel or create_channel(
            backend=config.backend,
            work_dir=config.work_dir,
            message_format=config.message_format,
            redis_url=config.redis_url,
        )
        self.simulator = simulator or RandomGameSimulator()
        self.rng = np.random.default_rng(config.seed)

        # The opponent deck doesn't change so we can load it here
        opponent_path = config.starter_deck_template.format(config.opponent_class.lower())
        self.opponent_class, self.opponent_deck = read_deck_file(opponent_path)

        # Status
        self.running = False
        self.jobs_completed = 0

        logger.info(
            f"Worker {self.worker_id} initialized: {config.num_games} games "
            f"against {self.opponent_class.value}"
        )

    def wait_for_job(self) -> bool:
        """
        Block until a job arrives or the search ends.

        Returns True if a job is ready and the search is still active.
        """
        while (
            self.running
            and not self.channel.has_job(self.worker_id)
            and self.channel.is_search_active()
        ):
            logger.info(f"Waiting... ({self.worker_id})")
            time.sleep(self.config.poll_interval)

        return self.channel.has_job(self.worker_id) and self.channel.is_search_active()

    def process_one(self) -> bool:
        """
        Process the pending job if there is one.

        Returns True if a job was processed, False if there was none.
        """
        if not self.channel.has_job(self.worker_id):
            return False

        # Wait for the job to finish being written
        time.sleep(self.config.settle_delay)

        job = self.channel.take_job(self.worker_id)
        logger.info(f"Worker {self.worker_id} evaluating {job.hero_class} deck")

        aggregator = EvaluationAggregator(
            job,
            self.opponent_class,
            self.opponent_deck,
            self.simulator,
            num_games=self.config.num_games,
            max_threads=self.config.max_threads,
            seed=int(self.rng.integers(2**31)),
        )
        result = aggregator.run()

        self.channel.publish_result(self.worker_id, result)
        self.jobs_completed += 1
        logger.info(
            f"Worker {self.worker_id} finished job: "
            f"{result.overall.win_count}/{self.config.num_games} wins"
        )
        return True

    def run(self) -> None:
        """
        Announce this worker and process jobs while the search is active.

        Returns immediately if the game pool cannot be configured.
        """
        if not configure_thread_pool(self.config.max_threads):
            return

        # Let the orchestrator know we are here
        self.channel.announce(self.worker_id)
        self.running = True
        logger.info(f"Worker {self.worker_id} starting")

        try:
            while self.running and self.channel.is_search_active():
                if not self.wait_for_job():
                    break
                self.process_one()

        except KeyboardInterrupt:
            logger.info("Worker interrupted by user")

        finally:
            self.running = False
            logger.info(
                f"Worker {self.worker_id} stopped: {self.jobs_completed} jobs completed"
            )

    def stop(self) -> None:
        """Stop worker after the current job."""
        self.running = False

    def get_status(self) -> dict:
        """Get current worker status."""
        return {
            "worker_id": self.worker_id,
            "running": self.running,
            "jobs_completed": self.jobs_completed,
            "opponent_class": self.opponent_class.value,
        }


def run_worker(argv: list[str] | None = None) -> None:
    """
    Run the worker as a standalone process.

    Usage: deck-elites-worker NODE_ID NUM_GAMES OPPONENT_CLASS
    """
    import argparse
    import signal

    parser = argparse.ArgumentParser(description="Deck evaluation worker")
    parser.add_argument("node_id", type=int)
    parser.add_argument("num_games", type=int)
    parser.add_argument("opponent_class")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger.info(f"Node Id: {args.node_id}")
    logger.info(f"Num games: {args.num_games}")
    logger.info(f"Opponent Deck Class: {args.opponent_class}")

    config = WorkerConfig.from_env(args.node_id, args.num_games, args.opponent_class)
    worker = EvaluationWorker(config)

    # Handle signals for graceful shutdown
    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        worker.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker.run()


if __name__ == "__main__":
    run_worker()
