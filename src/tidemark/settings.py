"""Configuration and logging setup.

Settings come from keyword arguments or ``TIDEMARK_*`` environment
variables, keyword arguments winning::

    TIDEMARK_BASE_URL=http://localhost:7452
    TIDEMARK_CHAT_PATH=/chat
    TIDEMARK_TIMEOUT=300
    TIDEMARK_PACE=0.01
    TIDEMARK_LOG_LEVEL=INFO
    TIDEMARK_LOG_FILE=tidemark.log
"""

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TIDEMARK_",
        case_sensitive=False,
    )

    base_url: str = "http://localhost:7452"
    chat_path: str = "/chat"
    timeout: float = 300.0
    pace: float = 0.01
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def chat_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.chat_path.lstrip('/')}"


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging for applications embedding tidemark."""
    settings = settings or Settings()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
