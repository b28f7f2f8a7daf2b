"""ChangeScope - semantic impact analysis for code changes."""

__version__ = "0.1.0"
