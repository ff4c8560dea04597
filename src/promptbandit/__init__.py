"""promptbandit: adaptive, budget-constrained prompt component selection."""

__version__ = "0.1.0"
