from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# SQLite em arquivo na raiz do projeto, salvo DATABASE_URL no ambiente
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'clinica_fisio.sqlite'}")

# Em produção: definir em variável de ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

INVITE_EXPIRE_DAYS = int(os.getenv("INVITE_EXPIRE_DAYS", "7"))

CACHE_PATH = Path(os.getenv("CACHE_PATH", str(Path.home() / ".clinica_fisio_cache.json")))
CACHE_TTL_HOURS = int(os.getenv("CACHE_TTL_HOURS", "24"))

# DDD usado quando o telefone chega sem código de área
DEFAULT_AREA_CODE = os.getenv("DEFAULT_AREA_CODE", "66")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
