"""Runtime settings, read from THREATMAP_* environment variables or a .env file."""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Layout geometry, export defaults and logging options."""

    model_config = SettingsConfigDict(
        env_prefix='THREATMAP_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    # Grid layout
    layout_columns: int = Field(default=6, ge=1)
    cell_width: int = 180
    cell_height: int = 100
    node_width: int = 140
    node_height: int = 60
    origin_x: int = 100
    origin_y: int = 100
    boundary_padding: int = 20
    boundary_gap: int = 60

    # Threat actors used when a model does not declare any
    default_threat_actors: list[str] = Field(
        default_factory=lambda: ['External Attacker', 'Malicious Insider']
    )

    # Attach DREAD ratings to every analyzed threat
    dread_scoring: bool = False

    log_level: str = 'INFO'
    log_file: str = ''

    workbook_creator: str = 'threatmap'


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
