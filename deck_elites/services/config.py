"""
deck_elites/services/config.py

Search configuration.

A search is described by one YAML file with four sections: ``search``
(budget and dispatch), ``deckspace`` (what decks may contain), ``map``
(feature grid) and ``paths`` (where coordination files and logs live).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from deck_elites.evolution.individual import STAT_NAMES, normalize_stat_name

logger = logging.getLogger(__name__)


@dataclass
class SearchParams:
    """Budget and dispatch policy."""
    initial_population: int = 100  # Random individuals dispatched before mutation starts
    num_to_evaluate: int = 10000
    fitness: str = "total_health_difference"
    poll_interval: float = 1.0  # Seconds between orchestrator poll cycles
    seed: int | None = 42


@dataclass
class DeckspaceParams:
    hero_class: str = "hunter"
    card_sets: list[str] = field(default_factory=list)  # Empty means all sets
    card_pool: str = "resources/cards.yaml"
    deck_size: int = 30


@dataclass
class FeatureParams:
    name: str
    min_value: int
    max_value: int


@dataclass
class MapParams:
    type: str = "FixedFeature"  # "FixedFeature" or "SlidingFeature"
    start_size: int = 5
    end_size: int = 10
    features: list[FeatureParams] = field(default_factory=list)


@dataclass
class PathParams:
    work_dir: str = "."
    log_dir: str = "logs"
    message_format: str = "json"  # "json" or "text"
    backend: str = "filesystem"  # "filesystem" or "redis"
    redis_url: str = "redis://localhost:6379"


@dataclass
class SearchConfig:
    """Complete configuration of one search."""
    search: SearchParams = field(default_factory=SearchParams)
    deckspace: DeckspaceParams = field(default_factory=DeckspaceParams)
    map: MapParams = field(default_factory=MapParams)
    paths: PathParams = field(default_factory=PathParams)
    source: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> "SearchConfig":
        map_data = dict(data.get("map", {}))
        features = [FeatureParams(**f) for f in map_data.pop("features", [])]

        config = cls(
            search=SearchParams(**data.get("search", {})),
            deckspace=DeckspaceParams(**data.get("deckspace", {})),
            map=MapParams(features=features, **map_data),
            paths=PathParams(**data.get("paths", {})),
            source=source,
        )
        config.validate()
        return config

    @property
    def feature_names(self) -> list[str]:
        return [f.name for f in self.map.features]

    def validate(self) -> None:
        """Reject configurations that cannot run at all."""
        for name in [self.search.fitness, *self.feature_names]:
            if normalize_stat_name(name) not in STAT_NAMES:
                raise ValueError(f"Unknown statistic: {name}")

        if not self.map.features:
            raise ValueError("At least one map feature is required")
        for f in self.map.features:
            if f.max_value < f.min_value:
                raise ValueError(f"Feature {f.name} has min_value above max_value")

        if self.map.start_size < 1 or self.map.end_size < 1:
            raise ValueError("Map sizes must be positive")
        if self.search.num_to_evaluate < 1:
            raise ValueError("num_to_evaluate must be positive")
        if self.search.initial_population < 1:
            raise ValueError("initial_population must be positive")


def load_config(path: str | Path) -> SearchConfig:
    """Load and validate a search configuration file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    config = SearchConfig.from_dict(data, source=str(path))
    logger.info(
        f"Loaded config {path}: {len(config.map.features)} features "
        f"({', '.join(config.feature_names)})"
    )
    return config
