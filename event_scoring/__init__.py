"""Event scoring: contestants, judges, evaluations and leaderboards."""

__version__ = "1.0.0"
