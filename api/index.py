"""
Vercel entry point for the Support Knowledge API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("KNOWLEDGE_CONFIG_PATH", "/var/task/knowledge_config.yaml")

from mangum import Mangum

from src.config import load_settings
from src.container import ServiceContainer
from src.main import create_app
from src.shared.infrastructure.logging import setup_logging

settings = load_settings()
setup_logging(settings.log_level, settings.environment)

# Lifespan is off in serverless; the container is built here and tables
# are expected to exist already.
app = create_app(ServiceContainer.from_settings(settings))

handler = Mangum(app, lifespan="off")
