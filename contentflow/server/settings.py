"""
Server settings read from the environment.

main.py loads `.env` (python-dotenv) before these are read, so values can
live either in the shell or in the project's .env file.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from contentflow.noderegistry.services import DEFAULT_IMAGE_MODEL, DEFAULT_TEXT_MODEL

_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    content_service: str = "template"
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    seed_demo: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        port = env.get("CONTENTFLOW_PORT", "3001")
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"CONTENTFLOW_PORT must be an integer, got '{port}'") from None

        service = env.get("CONTENTFLOW_CONTENT_SERVICE", "template").lower()
        if service not in ("template", "openai"):
            raise ValueError(f"CONTENTFLOW_CONTENT_SERVICE must be 'template' or 'openai', got '{service}'")

        return cls(
            host=env.get("CONTENTFLOW_HOST", "0.0.0.0"),
            port=port_number,
            log_level=env.get("CONTENTFLOW_LOG_LEVEL", "INFO").upper(),
            content_service=service,
            text_model=env.get("CONTENTFLOW_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            image_model=env.get("CONTENTFLOW_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            seed_demo=env.get("CONTENTFLOW_SEED_DEMO", "true").lower() in _TRUE,
        )
