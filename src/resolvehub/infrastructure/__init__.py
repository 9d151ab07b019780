"""
Infrastructure Package
======================

Technical infrastructure shared by the bounded contexts.
"""
