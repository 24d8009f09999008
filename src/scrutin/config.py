"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/config.py`.
Variables d'environnement et fichiers .env de Scrutin Engine.

Composants détectés :
  - ScrutinSettings
  - load_config

======================== ENGLISH ========================
File: `src/scrutin/config.py`.
Environment variables and .env files for Scrutin Engine.

Detected components:
  - ScrutinSettings
  - load_config
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
load_dotenv(_ENV_PATH, override=False)
load_dotenv(_ENV_LOCAL_PATH, override=False)

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ScrutinSettings(BaseSettings):
    """Configuration du moteur (préfixe ``SCRUTIN_``).

    English: Engine configuration (``SCRUTIN_`` prefix).
    """

    model_config = SettingsConfigDict(
        env_prefix="SCRUTIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    STORAGE_PATH: Path
    DB_FILENAME: str = "publications.db"
    LOG_LEVEL: str = "INFO"
    PAGE_SIZE: int = Field(default=10, ge=1)
    HIERARCHY_CONFIG: Path | None = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}")
        return level

    @property
    def db_path(self) -> Path:
        return self.STORAGE_PATH / self.DB_FILENAME

    def validate_paths(self) -> None:
        """/** Valide que les chemins critiques existent. / Validate that critical paths exist. **/"""
        if not self.STORAGE_PATH.exists():
            raise ValueError(f"STORAGE_PATH does not exist: {self.STORAGE_PATH}")
        if not self.STORAGE_PATH.is_dir():
            raise ValueError(f"STORAGE_PATH is not a directory: {self.STORAGE_PATH}")


def load_config() -> ScrutinSettings:
    """/** Charge et valide la configuration, en échouant avec détail. / Load and validate configuration, failing with details. **/"""
    try:
        settings = ScrutinSettings()
        settings.validate_paths()
        return settings
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
