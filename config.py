"""
Configuration management using Pydantic Settings with safe access wrapper
"""
from pydantic_settings import BaseSettings
from typing import Optional, Any
from urllib.parse import urlparse


class Settings(BaseSettings):
    # Application settings
    app_name: str = "NLP Annotation Pipeline"
    version: str = "1.0.0"
    debug: bool = False
    environment: str = "production"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8080

    # Pipeline settings
    pipelines_config: str = "pipelines.yaml"
    default_pipeline: str = "default"
    max_text_length: int = 1000000
    annotation_workers: int = 4

    # Model store settings
    models_dir: str = "dist/models"
    model_version: str = "1-5"
    remote_models_url: Optional[str] = None
    remote_fetch_timeout: int = 60
    model_caching: bool = True
    purge_corrupt_artifacts: bool = True

    # Logging settings
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_file_max_bytes: int = 10485760
    log_file_backup_count: int = 10

    # Monitoring
    enable_metrics: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"   # allow unknown env vars without error

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._validated = False
        self.validate_settings()

    def validate_settings(self):
        """Validate critical settings on startup"""
        if self._validated:
            return

        errors = []

        if self.environment not in ["development", "testing", "production"]:
            errors.append(f"Invalid environment: {self.environment}")

        if self.max_text_length <= 0:
            errors.append("max_text_length must be positive")

        if self.annotation_workers <= 0:
            errors.append("annotation_workers must be positive")

        if not self.models_dir:
            errors.append("Models directory is required")

        if self.remote_models_url:
            scheme = urlparse(self.remote_models_url).scheme
            if scheme not in ["http", "https", "file"]:
                errors.append(
                    f"Invalid remote models URL scheme: {scheme or '(none)'}. "
                    f"Valid options: http, https, file"
                )

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        self._validated = True


class SafeSettings:
    """Safe wrapper for settings with fallback defaults"""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._defaults = {
            "default_pipeline": "default",
            "pipelines_config": "pipelines.yaml",
            "models_dir": "dist/models",
            "model_version": "1-5",
            "remote_fetch_timeout": 60,
            "model_caching": True,
            "purge_corrupt_artifacts": True,
            "max_text_length": 1000000,
            "annotation_workers": 4,
            "log_level": "INFO",
            "log_dir": "logs",
            "environment": "production",
            "debug": False,
            "enable_metrics": True,
            "remote_models_url": None,
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Safely get setting value with fallback"""
        value = getattr(self._settings, key, None)
        if value is None:
            value = self._defaults.get(key, default)
        return value

    def __getattr__(self, key: str) -> Any:
        """Proxy attribute access with safety"""
        return self.get(key)

    @property
    def raw(self) -> Settings:
        """Get raw settings object"""
        return self._settings


# Initialize settings with safety wrapper
_raw_settings = Settings()
settings = SafeSettings(_raw_settings)
