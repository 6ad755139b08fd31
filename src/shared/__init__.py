"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context (knowledge, solutions):
structured logging and HTTP middleware.

Business rules of the knowledge or solutions modules do not belong here.
"""

__version__ = "1.0.0"
