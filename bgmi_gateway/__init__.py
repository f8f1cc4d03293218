"""BGMI tournament gateway: write-then-broadcast API over MongoDB."""

__version__ = "1.0.0"
