"""SignBank - sign video ingestion, lookup and live acceleration streaming."""

__version__ = "0.1.0"
