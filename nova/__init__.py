"""Nova: user and question service backed by an embedded SQLite store."""

__version__ = "1.0.0"
