from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_BATCH_SIZE = 1000


class QueryConfig(BaseModel):
    """Settings for the instance listing pipeline."""

    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    default_top: Optional[int] = Field(default=None, ge=0)


class StoreConfig(BaseModel):
    """Store (collaborator) selection."""

    backend: Literal["inmemory"] = "inmemory"
    task_hub: str = "TestHubName"


class HubscopeConfig(BaseModel):
    """Top-level configuration model."""

    query: QueryConfig = QueryConfig()
    store: StoreConfig = StoreConfig()


def load_config(path: Optional[str] = None) -> HubscopeConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to HUBSCOPE_CONFIG env
            variable or 'hubscope.yaml' in the current directory.
    """

    config_path = path or os.getenv("HUBSCOPE_CONFIG", "hubscope.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = HubscopeConfig(**data)
    else:
        config = HubscopeConfig()

    env_batch_size = os.getenv("HUBSCOPE_BATCH_SIZE")
    if env_batch_size:
        config.query = QueryConfig(
            batch_size=int(env_batch_size), default_top=config.query.default_top
        )
    env_task_hub = os.getenv("HUBSCOPE_TASK_HUB")
    if env_task_hub:
        config.store = config.store.model_copy(update={"task_hub": env_task_hub})
    return config
