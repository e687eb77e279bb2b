# core/settings.py
from __future__ import annotations
import yaml
from pathlib import Path
from pydantic import BaseModel, Field

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[1] / "config" / "settings.yaml"

class AppConfig(BaseModel):
    name: str = "academic-records"
    environment: str = "development"

class DBConfig(BaseModel):
    url: str = "sqlite:///data/academic_records.db"

class GradingConfig(BaseModel):
    display_decimals: int = Field(default=1, ge=0, le=4)
    cache_summaries: bool = True

class WorkflowConfig(BaseModel):
    batch_size: int = Field(default=100, ge=1)
    max_workers: int = Field(default=4, ge=1)
    batch_pause_seconds: float = Field(default=0.2, ge=0)

class NotificationConfig(BaseModel):
    enabled: bool = True
    workers: int = Field(default=2, ge=1)

class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

class Settings(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    db: DBConfig = Field(default_factory=DBConfig)
    grading: GradingConfig = Field(default_factory=GradingConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

def load_settings(path: str | Path = DEFAULT_SETTINGS_PATH) -> Settings:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return Settings(
        app=AppConfig(**data.get("app", {})),
        db=DBConfig(**data.get("db", {})),
        grading=GradingConfig(**data.get("grading", {})),
        workflow=WorkflowConfig(**data.get("workflow", {})),
        notifications=NotificationConfig(**data.get("notifications", {})),
        logging=LoggingConfig(**data.get("logging", {})),
    )
