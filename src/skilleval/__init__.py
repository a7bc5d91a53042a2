"""skilleval - regression harness for agent skill documents."""

__version__ = "0.1.0"
