"""Application configuration using pydantic-settings."""
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrowserConfig(BaseModel):
    """Browser session configuration.

    When ``cdp_port`` is set the session attaches to a running Chrome over
    CDP; otherwise a fresh Chromium is launched for each run.
    """

    cdp_port: Optional[int] = None
    headless: bool = True
    connect_retries: int = 5
    retry_delay: float = 2.0
    timeout: int = 30000


class ClaudeConfig(BaseModel):
    """Claude API configuration."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096


class WorkflowConfig(BaseModel):
    """Workflow engine and step policy configuration."""

    max_steps: int = 500
    max_pages_per_target: int = 10
    max_concurrent_runs: int = 1
    delay_between_runs: float = 0.0
    min_fill_confidence: float = 0.5
    fill_low_confidence: bool = False
    submit_applications: bool = True


class StorageConfig(BaseModel):
    """Locations of persisted data."""

    jobs_path: Path = Path("data/jobs.json")
    failures_path: Path = Path("data/failures.jsonl")
    resume_dir: Path = Path("data/resumes")
    resume_base_url: Optional[str] = None
    download_dir: Path = Path("/tmp")
    discovery_urls_path: Path = Path("config/discovery_urls.csv")


class ApiConfig(BaseModel):
    """HTTP API configuration."""

    api_keys: list[str] = ["test-api-key"]
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class Settings(BaseSettings):
    """Application settings loaded from YAML or environment."""

    model_config = SettingsConfigDict(
        env_prefix="APPLYFLOW_",
        env_nested_delimiter="__",
    )

    browser: BrowserConfig = BrowserConfig()
    claude: ClaudeConfig = ClaudeConfig()
    workflow: WorkflowConfig = WorkflowConfig()
    storage: StorageConfig = StorageConfig()
    api: ApiConfig = ApiConfig()

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from a YAML file.

        A missing file yields defaults so the CLI works without a config.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Settings instance with loaded configuration.
        """
        if not path.exists():
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)
