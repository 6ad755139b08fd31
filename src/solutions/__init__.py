"""
Solutions Module
================

Catalog of solutions taken from resolved cases, ranked for a new problem
by keyword relevance.
"""
