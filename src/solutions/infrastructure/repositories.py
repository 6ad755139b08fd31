"""
Solutions Infrastructure Repositories
=====================================

SQLAlchemy implementation of ISolutionRepository.

Votes are single UPDATE statements with column arithmetic, so concurrent
votes on the same solution compose.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import SolutionVote
from src.infrastructure.database import repository_errors
from src.solutions.application.services import ISolutionRepository
from src.solutions.domain import Solution
from src.solutions.infrastructure.models import SolutionModel


def _to_entity(model: SolutionModel) -> Solution:
    return Solution(
        id=model.id,
        solution_text=model.solution_text,
        problem_keywords=list(model.problem_keywords or []),
        problem_pattern=model.problem_pattern,
        solution_steps=list(model.solution_steps or []),
        category=model.category,
        subcategory=model.subcategory,
        case_id=model.case_id,
        created_by=model.created_by,
        success_score=model.success_score,
        resolution_time_minutes=model.resolution_time_minutes,
        used_count=model.used_count,
        helpful_votes=model.helpful_votes,
        not_helpful_votes=model.not_helpful_votes,
        is_verified=model.is_verified,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemySolutionRepository(ISolutionRepository):
    """Solution catalog backed by the 'support_solutions' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _ranked(self):
        return select(SolutionModel).where(SolutionModel.is_active.is_(True)).order_by(
            SolutionModel.used_count.desc(),
            SolutionModel.success_score.desc(),
        )

    async def get_by_id(self, solution_id: str) -> Optional[Solution]:
        with repository_errors("get_solution"):
            model = await self._session.get(SolutionModel, solution_id, populate_existing=True)
        return _to_entity(model) if model else None

    async def add(self, solution: Solution) -> Solution:
        model = SolutionModel(
            id=solution.id,
            case_id=solution.case_id,
            category=solution.category,
            subcategory=solution.subcategory,
            problem_keywords=solution.problem_keywords,
            problem_pattern=solution.problem_pattern,
            solution_text=solution.solution_text,
            solution_steps=solution.solution_steps,
            success_score=solution.success_score,
            resolution_time_minutes=solution.resolution_time_minutes,
            used_count=solution.used_count,
            helpful_votes=solution.helpful_votes,
            not_helpful_votes=solution.not_helpful_votes,
            is_verified=solution.is_verified,
            is_active=solution.is_active,
            created_by=solution.created_by,
            created_at=solution.created_at,
            updated_at=solution.updated_at,
        )
        with repository_errors("add_solution"):
            self._session.add(model)
            await self._session.flush()
        return solution

    async def list_top_active(self, limit: int) -> List[Solution]:
        with repository_errors("list_solutions"):
            result = await self._session.execute(self._ranked().limit(limit))
        return [_to_entity(m) for m in result.scalars().all()]

    async def list_top_in_category(self, category: str, limit: int) -> List[Solution]:
        stmt = self._ranked().where(SolutionModel.category == category).limit(limit)
        with repository_errors("list_solutions_by_category"):
            result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def record_vote(self, solution_id: str, vote: str, now: datetime) -> bool:
        values = {
            "used_count": SolutionModel.used_count + 1,
            "updated_at": now,
        }
        if vote == SolutionVote.HELPFUL:
            values["helpful_votes"] = SolutionModel.helpful_votes + 1
        elif vote == SolutionVote.NOT_HELPFUL:
            values["not_helpful_votes"] = SolutionModel.not_helpful_votes + 1

        stmt = (
            update(SolutionModel)
            .where(SolutionModel.id == solution_id)
            .values(**values)
            .returning(SolutionModel.id)
        )
        with repository_errors("record_solution_vote"):
            result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
