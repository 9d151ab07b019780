"""
ResolveHub Complaint Engine
===========================

SLA tracking, escalation and staff gamification for municipal complaints.
"""

__version__ = "1.0.0"
