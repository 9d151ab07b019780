"""
Gamification Interfaces Layer
=============================
"""

from resolvehub.gamification.interfaces.controllers import gamification_router

__all__ = ["gamification_router"]
