"""
evolution/archive.py

Feature-map archive for MAP-Elites.

Maintains the best individual found for each cell of a behavior-feature
grid. The grid resolution grows as the search progresses; whenever it
changes the whole map is rebuilt by replaying every individual ever added,
so the final map depends only on the history order and the final resolution.

Two geometries are available: fixed bins spread evenly over configured
bounds, and sliding bins whose edges split the history into equal groups.

Reference: "Illuminating search spaces by mapping elites"
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from .individual import Individual

logger = logging.getLogger(__name__)


@dataclass
class FeatureBounds:
    """Configured range of one behavior dimension."""
    name: str
    min_value: int
    max_value: int


class LinearMapSizer:
    """Grows the grid resolution linearly from start_size to end_size."""

    def __init__(self, start_size: int, end_size: int):
        self.start_size = start_size
        self.end_size = end_size

    def get_size(self, portion_done: float) -> int:
        size = self.start_size + (self.end_size - self.start_size) * portion_done
        size = int(math.floor(size + 0.5))
        low, high = sorted((self.start_size, self.end_size))
        return int(np.clip(size, low, high))


class FeatureMapArchive:
    """
    Fixed-boundary feature map with even bins in every dimension.

    Cells are keyed by a tuple of per-dimension bin indices. Each occupied
    cell stores its elite and the number of individuals that landed there.
    """

    def __init__(
        self,
        bounds: list[FeatureBounds],
        sizer: LinearMapSizer,
        num_to_evaluate: int,
        seed: int | None = None,
    ):
        if not bounds:
            raise ValueError("Feature map needs at least one feature")
        for b in bounds:
            if b.max_value < b.min_value:
                raise ValueError(f"Feature {b.name} has min_value above max_value")

        self.bounds = bounds
        self.sizer = sizer
        self.num_to_evaluate = num_to_evaluate
        self.rng = np.random.default_rng(seed)

        self.num_groups = -1
        self.all_individuals: list[Individual] = []
        self.elite_map: dict[tuple[int, ...], Individual] = {}
        self.cell_count: dict[tuple[int, ...], int] = {}

    @property
    def num_features(self) -> int:
        return len(self.bounds)

    @property
    def feature_names(self) -> list[str]:
        return [b.name for b in self.bounds]

    def get_feature_index(self, feature_id: int, feature: int) -> int:
        """Bin one raw feature value at the current resolution."""
        low = self.bounds[feature_id].min_value
        high = self.bounds[feature_id].max_value
        if feature <= low:
            return 0
        if feature >= high:
            return self.num_groups - 1

        gap = high - low + 1
        index = self.num_groups * (feature - low) // gap
        return min(max(index, 0), self.num_groups - 1)

    def get_cell(self, features: tuple[int, ...]) -> tuple[int, ...]:
        """Map a feature vector to its archive cell."""
        return tuple(
            self.get_feature_index(i, features[i])
            for i in range(self.num_features)
        )

    def _add_to_map(self, individual: Individual) -> None:
        cell = self.get_cell(individual.features)

        if cell not in self.elite_map:
            self.elite_map[cell] = individual
            self.cell_count[cell] = 0
        elif self.elite_map[cell].fitness < individual.fitness:
            self.elite_map[cell] = individual

        self.cell_count[cell] += 1

    def remap(self, num_groups: int) -> None:
        """Switch to a new resolution and replay the full history."""
        logger.info(f"Remapping feature map: {self.num_groups} -> {num_groups} groups")
        self.num_groups = num_groups
        self.elite_map = {}
        self.cell_count = {}
        for individual in self.all_individuals:
            self._add_to_map(individual)

    def add(self, individual: Individual) -> None:
        """
        Add an evaluated individual.

        The resolution implied by progress (counting this addition) is
        computed first; a change triggers a full rebuild.
        """
        if individual.features is None or individual.fitness is None:
            raise ValueError("Only evaluated individuals can be added to the archive")

        self.all_individuals.append(individual)

        portion_done = len(self.all_individuals) / self.num_to_evaluate
        next_num_groups = self.sizer.get_size(portion_done)
        if next_num_groups != self.num_groups:
            self.remap(next_num_groups)
        else:
            self._add_to_map(individual)

    def get_random_elite(self) -> Individual:
        """Return the elite of a uniformly chosen occupied cell."""
        if not self.elite_map:
            raise IndexError("Cannot select an elite from an empty archive")

        cells = list(self.elite_map.keys())
        return self.elite_map[cells[self.rng.integers(len(cells))]]

    def get_best(self) -> tuple[Individual | None, float]:
        """Return globally best elite and its fitness."""
        if not self.elite_map:
            return None, float("-inf")

        best = max(self.elite_map.values(), key=lambda ind: ind.fitness)
        return best, best.fitness

    def get_statistics(self) -> dict[str, Any]:
        """Get archive statistics."""
        if not self.elite_map:
            return {"empty": True, "num_groups": self.num_groups}

        fitnesses = [ind.fitness for ind in self.elite_map.values()]
        return {
            "size": len(self.elite_map),
            "num_groups": self.num_groups,
            "coverage": len(self.elite_map) / (self.num_groups ** self.num_features),
            "individuals": len(self.all_individuals),
            "fitness_mean": float(np.mean(fitnesses)),
            "fitness_max": int(np.max(fitnesses)),
            "fitness_min": int(np.min(fitnesses)),
        }


class SlidingFeatureMapArchive(FeatureMapArchive):
    """
    Feature map whose bin edges follow the observed feature values.

    On every remap each dimension is split into groups holding an equal
    share of the history, using the sorted feature values of every
    individual added so far. Configured bounds are not used for binning.
    """

    def __init__(
        self,
        bounds: list[FeatureBounds],
        sizer: LinearMapSizer,
        num_to_evaluate: int,
        seed: int | None = None,
    ):
        super().__init__(bounds, sizer, num_to_evaluate, seed=seed)
        self.boundaries: list[np.ndarray] = [
            np.empty(0, dtype=int) for _ in range(self.num_features)
        ]

    def get_feature_index(self, feature_id: int, feature: int) -> int:
        index = int(np.searchsorted(self.boundaries[feature_id], feature, side="right"))
        return min(index, self.num_groups - 1)

    def _update_boundaries(self, num_groups: int) -> None:
        num_individuals = len(self.all_individuals)
        if num_individuals == 0:
            return

        cuts = np.arange(1, num_groups) * num_individuals // num_groups
        for i in range(self.num_features):
            values = np.sort([ind.features[i] for ind in self.all_individuals])
            self.boundaries[i] = values[cuts]

    def remap(self, num_groups: int) -> None:
        """Recompute the bin edges from the history, then replay it."""
        self._update_boundaries(num_groups)
        super().remap(num_groups)


MAP_TYPES = {
    "FixedFeature": FeatureMapArchive,
    "SlidingFeature": SlidingFeatureMapArchive,
}


def create_feature_map(
    map_type: str,
    bounds: list[FeatureBounds],
    start_size: int,
    end_size: int,
    num_to_evaluate: int,
    seed: int | None = None,
) -> FeatureMapArchive:
    """
    Factory function to create a feature map.

    Args:
        map_type: "FixedFeature" (even bins inside the configured bounds) or
            "SlidingFeature" (equal-population bins over the history)

    Unknown types are logged and fall back to a fixed map.
    """
    archive_cls = MAP_TYPES.get(map_type)
    if archive_cls is None:
        logger.error(f"Unknown feature map type {map_type!r}, using FixedFeature")
        archive_cls = FeatureMapArchive

    sizer = LinearMapSizer(start_size, end_size)
    return archive_cls(bounds, sizer, num_to_evaluate, seed=seed)
