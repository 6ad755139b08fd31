"""
Support Knowledge - Main Application
====================================

Knowledge retrieval and confidence gating for customer support.

Modules:
- Knowledge: answered dialogs, similarity search, auto-answer gate, feedback
- Solutions: keyword-scored catalog of solutions from resolved cases

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and scoring rules
- Infrastructure: Database, embeddings, policy file
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and wiring
from src.config import Settings, load_settings
from src.container import ServiceContainer

# Module Routers
from src.knowledge.interfaces import knowledge_router
from src.solutions.interfaces import solutions_router

# Shared
from src.shared.api.middleware import install_middleware
from src.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


API_DESCRIPTION = """
## Support Knowledge API

Reuses answers that operators already gave.

---

### Knowledge Module

- `POST /knowledge/search` - Similar answered questions
- `POST /knowledge/auto-answer/check` - Can this question be answered automatically?
- `POST /knowledge/auto-answer` - Gate and render the automatic reply
- `POST /knowledge/suggest` - Dialogs, or catalog solutions when none match
- `POST /knowledge/dialogs` - Store an answered question
- `POST /knowledge/feedback` - Rate an answer
- `GET /knowledge/stats` - Learning statistics

**Auto-answer gate** (defaults, tunable in `knowledge_config.yaml`):

| Check | Threshold |
|-------|-----------|
| Similarity | >= 0.92 |
| Confidence | >= 0.50 |
| Times used | >= 2 |
| Rated not helpful | never |

---

### Solutions Module

- `POST /solutions/recommend` - Keyword-scored recommendations
- `POST /solutions` - Add a solution from a resolved case
- `POST /solutions/{id}/votes` - Record usage or a rating
"""


def _ensure_container(app: FastAPI, settings: Settings) -> ServiceContainer:
    container = getattr(app.state, "container", None)
    if container is None:
        container = ServiceContainer.from_settings(settings)
        app.state.container = container
    return container


def create_app(
    container: Optional[ServiceContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    A prebuilt container (tests, serverless) is attached immediately;
    otherwise the lifespan builds one from settings at startup.
    """
    settings = container.settings if container is not None else (settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        STARTUP:
        1. Setup structured logging
        2. Build the service container (policy file, embedder, storage)
        3. Create database tables when PostgreSQL is configured

        SHUTDOWN:
        1. Close database connections
        """
        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Support Knowledge", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        service_container = _ensure_container(app, settings)
        await service_container.startup()

        logger.info("Support Knowledge started successfully")

        yield  # Application runs here

        logger.info("Shutting down Support Knowledge")
        await service_container.shutdown()
        logger.info("Support Knowledge shutdown complete")

    app = FastAPI(
        title="Support Knowledge API",
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    if container is not None:
        app.state.container = container

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Correlation ids, request logging, error mapping ===
    install_middleware(app)

    # === Include Module Routers ===
    app.include_router(knowledge_router)
    app.include_router(solutions_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service status",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "database": "connected",
                            "embedding_provider": "openai"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports "degraded" when PostgreSQL is configured but unreachable.
        """
        service_container: ServiceContainer = request.app.state.container
        checks = {"embedding_provider": service_container.embedder.provider_name}

        if service_container.database is None:
            checks["database"] = "in_memory"
        elif await service_container.database.ping():
            checks["database"] = "connected"
        else:
            checks["database"] = "unavailable"

        return {
            "status": "degraded" if checks["database"] == "unavailable" else "healthy",
            "version": service_container.settings.app_version,
            "environment": service_container.settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Support Knowledge",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "knowledge": {"prefix": "/knowledge"},
                "solutions": {"prefix": "/solutions"}
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    run_settings = load_settings()
    uvicorn.run(
        "src.main:app",
        host=run_settings.host,
        port=run_settings.port,
        reload=run_settings.environment == "development",
        log_level="info"
    )
