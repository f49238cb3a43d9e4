"""Tournament archive service: snapshots, archive index and live-data deletion."""

__version__ = "1.0.0"
