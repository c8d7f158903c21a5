from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(root: Path, value: str | Path) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (root / path)


class AppSection(BaseModel):
    name: str = "balloontrails"
    hours_back: int = 24


class PathsSection(BaseModel):
    processed_dir: Path = Path("data/processed")


class CacheSection(BaseModel):
    enabled: bool = True
    max_entries: int = 4096
    ttl_seconds: int = 0


class IngestionSection(BaseModel):
    base_url: str = "https://a.windbornesystems.com/treasure"
    request_timeout_seconds: float = 15.0
    max_retries: int = 2
    retry_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    jitter_seconds: float = 0.0
    respect_retry_after: bool = True


class TrackingSection(BaseModel):
    max_km_per_hour: float = 500.0
    # Segments faster than this are treated as mislinks; None keeps everything.
    max_reasonable_speed_ms: Optional[float] = 120.0
    trails_max_hours: int = 6


class NeighborsSection(BaseModel):
    max_km: float = 500.0
    cyclic_hours: bool = True


class ForecastSection(BaseModel):
    base_url: str = "https://api.open-meteo.com/v1/forecast"
    request_timeout_seconds: float = 10.0
    concurrency: int = 6
    max_points: int = 100
    overflow_policy: str = "truncate"  # truncate | reject
    grid_step_deg: float = 0.25


class AppConfig(BaseModel):
    app: AppSection = Field(default_factory=AppSection)
    paths: PathsSection = Field(default_factory=PathsSection)
    cache: CacheSection = Field(default_factory=CacheSection)
    ingestion: IngestionSection = Field(default_factory=IngestionSection)
    tracking: TrackingSection = Field(default_factory=TrackingSection)
    neighbors: NeighborsSection = Field(default_factory=NeighborsSection)
    forecast: ForecastSection = Field(default_factory=ForecastSection)

    def resolve_paths(self, root: Optional[Path] = None) -> "AppConfig":
        repo_root = project_root() if root is None else root
        updated_paths = self.paths.model_copy(
            update={
                "processed_dir": _resolve_path(repo_root, self.paths.processed_dir),
            }
        )
        return self.model_copy(update={"paths": updated_paths})


def _maybe_load_dotenv() -> None:
    if os.getenv("BALLOONTRAILS_SKIP_DOTENV"):
        return
    load_dotenv()


def load_config(config_path: str | Path | None = None) -> AppConfig:
    _maybe_load_dotenv()

    root = project_root()
    candidate = config_path or os.getenv("BALLOONTRAILS_CONFIG", "configs/config.yaml")
    path = _resolve_path(root, candidate)
    if not path.exists():
        path = root / "configs/config.example.yaml"
    if not path.exists():
        return AppConfig().resolve_paths(root)

    data: dict[str, Any] = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return AppConfig.model_validate(data).resolve_paths(root)


_CONFIG: AppConfig | None = None


def get_config() -> AppConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG
