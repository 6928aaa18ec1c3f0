"""
Deck-Elites: Distributed Quality-Diversity Search over Card Decks

A MAP-Elites search that evolves fixed-length decks, evaluates each deck by
playing many simulated games against a fixed opponent on worker processes,
and keeps the best deck found for every cell of a behavior-feature grid.
"""

__version__ = "0.1.0"
