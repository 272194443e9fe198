"""
Service Configuration

Central configuration for the Pulse trace service.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import List
from enum import Enum


class Environment(str, Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


# Hard ceiling on traces accepted in one ingestion request
MAX_BATCH_SIZE = 100

# Pagination bounds for GET /v1/traces
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

# Number of rows returned in topModels
TOP_MODELS_LIMIT = 5


@dataclass
class Config:
    """Service configuration."""

    # Environment
    env: Environment = Environment.DEVELOPMENT
    debug: bool = True

    # Application
    app_name: str = "Pulse"
    port: int = 3000

    # Admin surface (project creation). Disabled when empty.
    admin_key: str = ""

    # Ingestion
    max_batch_size: int = MAX_BATCH_SIZE

    # CORS
    cors_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        env_str = os.getenv("ENV", "development").lower()
        env = Environment(env_str) if env_str in [e.value for e in Environment] else Environment.DEVELOPMENT

        cors = os.getenv("CORS_ORIGINS", "")

        return cls(
            env=env,
            debug=env in (Environment.DEVELOPMENT, Environment.TEST),
            app_name=os.getenv("APP_NAME", "Pulse"),
            port=int(os.getenv("PORT", "3000")),
            admin_key=os.getenv("ADMIN_KEY", ""),
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
        )


# Global config instance
config = Config.from_env()
