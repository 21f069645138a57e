"""Citation, ranking, pinpointing and quality metrics over a SQLite document index."""

__version__ = "0.1.0"