"""
Shared FastAPI dependencies: the container from app state and one
repository unit of work per request.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request

from src.container import Repositories, ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_repositories(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[Repositories, None]:
    async with container.repositories() as repos:
        yield repos
