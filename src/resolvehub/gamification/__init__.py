"""
Gamification Module
===================

Bounded Context for staff performance scoring.

Responsibilities:
- Award points when a staff member resolves a complaint
- Assign badge tiers from accumulated points
- Produce leaderboard and aggregate statistics on demand
"""

__version__ = "1.0.0"
