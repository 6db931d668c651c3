# powindex/tasks/scoring/__init__.py
"""
Proof-of-Work scoring formulas.
"""

from .scoring_engine import ScoringContext, ScoringEngine, lookup_percentile

__all__ = [
    'ScoringContext',
    'ScoringEngine',
    'lookup_percentile'
]
