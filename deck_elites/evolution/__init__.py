"""
deck_elites/evolution/

Search-side data structures for MAP-Elites over card decks.

- Cards: the catalog every deck is drawn from
- Individual: a deck plus its evaluation statistics
- FeatureMapArchive: best individual per behavior cell, with growing resolution
"""

from .archive import (
    FeatureBounds,
    FeatureMapArchive,
    LinearMapSizer,
    SlidingFeatureMapArchive,
    create_feature_map,
)
from .cards import Card, HeroClass, load_card_pool, read_deck_file, write_deck_file
from .individual import (
    STAT_NAMES,
    DeckSpace,
    Individual,
    OverallStatistics,
    StrategyStatistics,
    normalize_stat_name,
)

__all__ = [
    "FeatureBounds",
    "FeatureMapArchive",
    "LinearMapSizer",
    "SlidingFeatureMapArchive",
    "create_feature_map",
    "Card",
    "HeroClass",
    "load_card_pool",
    "read_deck_file",
    "write_deck_file",
    "STAT_NAMES",
    "DeckSpace",
    "Individual",
    "OverallStatistics",
    "StrategyStatistics",
    "normalize_stat_name",
]
