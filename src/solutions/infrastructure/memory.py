"""
In-memory solution catalog for local development (storage_backend=memory)
and tests. Returned entities are copies; mutations happen under a lock.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from src.config import SolutionVote
from src.solutions.application.services import ISolutionRepository
from src.solutions.domain import Solution


def _ranking_key(solution: Solution):
    # used_count desc, then success_score desc; NULL sorts first under DESC in PostgreSQL
    score = solution.success_score if solution.success_score is not None else 6
    return (-solution.used_count, -score)


class InMemorySolutionRepository(ISolutionRepository):

    def __init__(self, solutions: Optional[List[Solution]] = None):
        self._items: Dict[str, Solution] = {}
        self._lock = asyncio.Lock()
        for s in solutions or []:
            self._items[s.id] = replace(s)

    async def get_by_id(self, solution_id: str) -> Optional[Solution]:
        item = self._items.get(solution_id)
        return replace(item) if item else None

    async def add(self, solution: Solution) -> Solution:
        async with self._lock:
            self._items[solution.id] = replace(solution)
        return solution

    async def list_top_active(self, limit: int) -> List[Solution]:
        active = [s for s in self._items.values() if s.is_active]
        return [replace(s) for s in sorted(active, key=_ranking_key)[:limit]]

    async def list_top_in_category(self, category: str, limit: int) -> List[Solution]:
        matching = [s for s in self._items.values() if s.is_active and s.category == category]
        return [replace(s) for s in sorted(matching, key=_ranking_key)[:limit]]

    async def record_vote(self, solution_id: str, vote: str, now: datetime) -> bool:
        async with self._lock:
            item = self._items.get(solution_id)
            if item is None:
                return False
            item.used_count += 1
            if vote == SolutionVote.HELPFUL:
                item.helpful_votes += 1
            elif vote == SolutionVote.NOT_HELPFUL:
                item.not_helpful_votes += 1
            item.updated_at = now
            return True
