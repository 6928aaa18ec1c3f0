"""
deck_elites/services/

Distributed services for the deck search.

Architecture:
- Orchestrator: owns the feature map, generates individuals, collects results
- Worker: plays the games for one deck at a time
- Channel: presence/job/result exchange over a shared directory (or Redis)

The orchestrator writes one job per idle worker. Workers consume the job,
play the games in parallel, and publish a single summed result.
"""

from .aggregator import EvaluationAggregator
from .channel import FilesystemChannel, RedisChannel, WorkerChannel, create_channel
from .config import SearchConfig, load_config
from .controller import SearchOrchestrator, SearchState
from .messages import JobDescriptor, ResultRecord
from .simulator import GameResult, GameSimulator, RandomGameSimulator
from .worker import EvaluationWorker, WorkerConfig

__all__ = [
    "EvaluationAggregator",
    "FilesystemChannel",
    "RedisChannel",
    "WorkerChannel",
    "create_channel",
    "SearchConfig",
    "load_config",
    "SearchOrchestrator",
    "SearchState",
    "JobDescriptor",
    "ResultRecord",
    "GameResult",
    "GameSimulator",
    "RandomGameSimulator",
    "EvaluationWorker",
    "WorkerConfig",
]
