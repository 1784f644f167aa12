"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class GoogleCloudConfig(BaseModel):
    """Google Cloud configuration.

    project_id must be set via .env or environment variable before any
    Vertex AI client is built.
    """

    project_id: str = ""
    location: str = "us-central1"
    use_vertex_ai: bool = True


class ModelsConfig(BaseModel):
    """AI model identifiers."""

    transition_llm: str = "gemini-2.5-flash"
    video_gen: str = "veo-3.1-generate-preview"


class OllamaConfig(BaseModel):
    """Ollama endpoint used when the transition model has an ollama/ prefix."""

    base_url: str = "http://localhost:11434"
    api_key: Optional[str] = None


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    aspect_ratio: str = "16:9"
    resolution: str = "1080p"
    generate_audio: bool = True
    enhance_prompt: bool = True
    person_generation: str = "allow_all"
    video_poll_interval: float = 10
    video_poll_max: int = 60
    planner_retry_attempts: int = 2
    planner_retry_delay: float = 0.4
    planner_timeout: float = 60
    submit_retry_attempts: int = 5
    cancel_on_failure: bool = False
    materialize_remote_results: bool = False
    prompt_guide_path: Optional[Path] = None


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///storyreel.db"
    tmp_dir: Path = Path("tmp")

    @field_validator("tmp_dir", mode="before")
    @classmethod
    def convert_tmp_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Public URL settings for the layer that serves finished videos."""

    public_base_url: Optional[str] = None


class LoggingConfig(BaseModel):
    """Log level and optional shared log file."""

    level: str = "INFO"
    file: Optional[Path] = None


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: STORYREEL_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="STORYREEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_cloud: GoogleCloudConfig = Field(default_factory=GoogleCloudConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Init settings (explicit keyword arguments, used by tests)
        2. Environment variables
        3. .env file
        4. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance for entry points (CLI); core classes take explicit values
settings = Settings()
