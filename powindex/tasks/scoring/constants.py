# powindex/tasks/scoring/constants.py
"""Weights and thresholds of the Proof-of-Work scoring formula."""

# Category PoW = weighted sum of the four components
COMPONENT_WEIGHTS = {
    "impact": 0.40,
    "complexity": 0.25,
    "collaboration": 0.20,
    "consistency": 0.15,
}

# impact component
IMPACT_MEAN_WEIGHT = 0.7
IMPACT_MERGE_RATE_WEIGHT = 0.3

# complexity component
TESTS_BONUS = 10.0
REFACTOR_BONUS = 5.0
SMALL_COMMIT_LINES = 50
SMALL_COMMIT_PENALTY = 0.5
MAX_SMALL_COMMIT_PENALTY = 20.0

# collaboration component
CLOSED_PR_WEIGHT = 0.5
MERGED_PR_WEIGHT = 0.3
FORKED_REPO_WEIGHT = 0.2

# consistency component
CONSISTENCY_DISPERSION_FACTOR = 50.0
RECENCY_MONTHS = 6

# low-confidence scores are pulled halfway toward zero
LOW_CONFIDENCE_FLOOR = 0.5

# (minimum score, percentile); scores below the last step map to 100 - score
PERCENTILE_STEPS = [
    (90, 10),
    (80, 20),
    (70, 30),
    (60, 40),
    (50, 50),
]
