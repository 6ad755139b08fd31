"""
Solutions Interfaces Layer
==========================

Contains:
- Controllers: FastAPI route handlers
"""

from src.solutions.interfaces.controllers import solutions_router

__all__ = ["solutions_router"]
