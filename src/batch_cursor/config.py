"""Typed configuration loader for batch cursor jobs."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .env import load_env
from .errors import ConfigurationError
from .models import PartitionedQuery, RequestList

load_env()


class QueryConfig(BaseModel):
    url: str = Field(..., description="Search descriptor, e.g. Observation?status=final")
    partition_id: Optional[str] = None

    @field_validator("partition_id", mode="before")
    @classmethod
    def _ensure_string(cls, value):
        if value is None:
            return value
        return str(value)


class JobConfig(BaseModel):
    name: str
    batch_size: Optional[int] = Field(None, gt=0)
    queries: List[QueryConfig]

    @field_validator("queries")
    @classmethod
    def _require_queries(cls, value):
        if not value:
            raise ValueError("at least one query is required")
        return value

    def request_list(self) -> RequestList:
        return RequestList(
            tuple(PartitionedQuery(query=q.url, partition_id=q.partition_id) for q in self.queries)
        )


class ReaderSettings(BaseModel):
    default_batch_size: int = Field(1000, gt=0)
    minutes_in_future_to_process_from: int = 1
    tolerate_corrupt_checkpoint: bool = False
    checkpoint_prefix: str = ""


class SourceConfig(BaseModel):
    db_path: str = "data/records.db"


class AppConfig(BaseModel):
    reader: ReaderSettings = Field(default_factory=ReaderSettings)
    source: SourceConfig = Field(default_factory=SourceConfig)
    jobs: List[JobConfig] = Field(default_factory=list)

    def get_job(self, name: str) -> JobConfig:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(f"Job definition '{name}' not found in configuration")


class ConfigLoader:
    """Loads YAML driven configuration and validates it with Pydantic."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.config_path = Path(
            path or os.getenv("BATCH_CURSOR_CONFIG_PATH", "config/batch_cursor.yaml")
        )
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        self.model = self._parse_yaml()

    def _parse_yaml(self) -> AppConfig:
        raw: dict
        with self.config_path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
        try:
            return AppConfig(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def get_job(self, name: str) -> JobConfig:
        return self.model.get_job(name)


__all__ = [
    "AppConfig",
    "ConfigLoader",
    "JobConfig",
    "ReaderSettings",
]
