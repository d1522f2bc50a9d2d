"""Launchpad engine - trade ingestion, quests, reward pools and agentic terminals."""

__version__ = "0.1.0"
