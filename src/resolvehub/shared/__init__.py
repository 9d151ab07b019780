"""
Shared Kernel Module
====================

Generic infrastructure used by both bounded contexts (complaints and
gamification): structured logging and HTTP middleware.

Business rules belong to the bounded contexts, not here.
"""
