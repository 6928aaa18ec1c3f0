"""
deck_elites/services/logs.py

CSV logs written by the orchestrator while a search runs.

- RunningIndividualLog: one row per evaluated individual
- FrequentMapLog: one compressed snapshot of the feature map per update
"""

from __future__ import annotations

import csv
from pathlib import Path

from deck_elites.evolution.archive import FeatureMapArchive
from deck_elites.evolution.individual import GAME_STAT_NAMES, Individual


class RunningIndividualLog:
    """Appends every logged individual to a CSV file."""

    def __init__(self, path: str | Path, feature_names: list[str]):
        self.path = Path(path)
        self.feature_names = list(feature_names)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        header = [
            "Individual",
            "HeroClass",
            "Fitness",
            *self.feature_names,
            *GAME_STAT_NAMES,
            "Deck",
            "CardUsage",
        ]
        with open(self.path, "w", newline="") as f:
            csv.writer(f).writerow(header)

    def log_individual(self, individual: Individual) -> None:
        usage = [str(individual.card_usage.get(name, 0)) for name in individual.card_names()]
        row = [
            individual.id,
            individual.hero_class.value,
            individual.fitness,
            *individual.features,
            *(individual.overall.to_dict()[name] for name in GAME_STAT_NAMES),
            str(individual),
            "*".join(usage),
        ]
        with open(self.path, "a", newline="") as f:
            csv.writer(f).writerow(row)


class FrequentMapLog:
    """
    Compressed feature-map log for frequent snapshots.

    Each row starts with the grid dimensions (e.g. ``5x5``) followed by one
    ``cell:size:wins:fitness:features`` entry per occupied cell. Decks are
    not included.
    """

    def __init__(self, path: str | Path, archive: FeatureMapArchive):
        self.path = Path(path)
        self.archive = archive
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w", newline="") as f:
            csv.writer(f).writerow([
                "Dimensions",
                "Map (cell:Size:Wins:Fitness:Features)",
            ])

    def update_log(self) -> None:
        """Append the current state of the feature map."""
        dimensions = "x".join([str(self.archive.num_groups)] * self.archive.num_features)
        row = [dimensions]

        for cell, elite in self.archive.elite_map.items():
            components = [
                *cell,
                self.archive.cell_count[cell],
                elite.overall.win_count,
                elite.fitness,
                *elite.features,
            ]
            row.append(":".join(str(c) for c in components))

        with open(self.path, "a", newline="") as f:
            csv.writer(f).writerow(row)
