"""Configuration management for convtest."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

CONFIG_NAMES = ["convtest.json", ".convtest.json"]


class ProjectConfig(BaseModel):
    """Project identification and metadata."""

    name: str = Field(default="project", description="Project name for identification")
    description: str = Field(default="", description="Brief description shown in reports")


class DiscoveryConfig(BaseModel):
    """Test discovery configuration."""

    containers: list[str] = Field(
        default_factory=list,
        description="Module names or .py paths holding a registration entry point",
    )
    search_paths: list[str] = Field(
        default_factory=list, description="Directories added to sys.path before importing modules"
    )
    parallel_workers: int = Field(default=1, description="Containers discovered concurrently")

    @field_validator("parallel_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("parallel_workers must be at least 1")
        return v


class ExecutionConfig(BaseModel):
    """Test execution configuration."""

    workers: int = Field(default=1, description="Top-level groups executed concurrently")
    timeout_seconds: Optional[float] = Field(
        default=None, description="Per-test timeout; unset means no limit"
    )
    fail_fast: bool = Field(default=False, description="Stop after the first failed test")

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class ReportConfig(BaseModel):
    """Report generation configuration."""

    output_dir: str = Field(default="./reports", description="Directory for report output")
    filename: str = Field(default="test_report.html", description="Report filename")
    title: str = Field(default="Test Results", description="Report title")


class StorageConfig(BaseModel):
    """Run history storage configuration."""

    enabled: bool = Field(default=True, description="Record runs in the history database")
    database_path: str = Field(default=".convtest/history.db", description="SQLite database path")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING", description="Log level for console output")
    log_file: Optional[str] = Field(default=None, description="Optional debug log file")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


class ConvtestConfig(BaseModel):
    """Main configuration for convtest."""

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "ConvtestConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def find(cls, start_dir: Path | str | None = None) -> Optional[Path]:
        """Search up the directory tree for a configuration file."""
        current = Path(start_dir or Path.cwd()).resolve()
        while True:
            for name in CONFIG_NAMES:
                config_path = current / name
                if config_path.exists():
                    return config_path
            if current == current.parent:
                return None
            current = current.parent

    @classmethod
    def find_and_load(cls, start_dir: Path | str | None = None) -> "ConvtestConfig":
        """Find and load configuration file, searching up the directory tree."""
        config_path = cls.find(start_dir)
        if config_path is None:
            raise FileNotFoundError(
                "No configuration file found. Create convtest.json or run 'convtest init'"
            )
        return cls.from_file(config_path)

    @classmethod
    def load_or_default(cls, path: Path | str | None = None) -> tuple["ConvtestConfig", Path]:
        """Load an explicit or discovered configuration, falling back to defaults.

        Returns the configuration and the directory relative paths resolve
        against. An explicit path that does not exist is an error.
        """
        if path is not None:
            path = Path(path)
            return cls.from_file(path), path.resolve().parent

        found = cls.find()
        if found is None:
            return cls(), Path.cwd()
        return cls.from_file(found), found.parent

    def to_file(self, path: Path | str) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    def get_absolute_paths(self, base_dir: Path | str | None = None) -> dict[str, Path]:
        """Get absolute paths for various config paths."""
        if base_dir is None:
            base_dir = Path.cwd()
        else:
            base_dir = Path(base_dir)

        paths = {
            "report_output_dir": (base_dir / self.report.output_dir).resolve(),
            "database_path": (base_dir / self.storage.database_path).resolve(),
        }
        if self.logging.log_file:
            paths["log_file"] = (base_dir / self.logging.log_file).resolve()
        return paths


def get_default_config() -> ConvtestConfig:
    """Return a default configuration."""
    return ConvtestConfig(
        project=ProjectConfig(name="my-project"),
        discovery=DiscoveryConfig(containers=["tests/convtest_suite.py"], search_paths=["."]),
    )


def create_example_config(output_path: Path | str) -> Path:
    """Create an example configuration file."""
    output_path = Path(output_path)
    config = get_default_config()
    config.project.description = "Brief description of your project"
    config.to_file(output_path)
    return output_path
