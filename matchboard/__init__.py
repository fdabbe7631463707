# matchboard/__init__.py
"""
Scoreboard screenshot ingestion and season leaderboards.
"""

__version__ = "1.0.0"
