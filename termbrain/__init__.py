"""termbrain: a memory for your terminal."""

__version__ = "0.3.0"
