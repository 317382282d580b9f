from .engine import DEFAULT_THRESHOLD, MatchingEngine  # noqa: F401  (re-export)
