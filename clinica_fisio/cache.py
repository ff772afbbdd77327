"""
Cache persistente com TTL para dados de sessão e do tenant atual
(usuário logado, clínica selecionada, token).

Armazena um único arquivo JSON; cada entrada leva o instante em que foi
gravada e é descartada na leitura quando passa do TTL.
"""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from .settings import CACHE_PATH, CACHE_TTL_HOURS

log = logging.getLogger(__name__)

USER_DATA = "user_data"
CLINIC_DATA = "clinic_data"
SESSION_TOKEN = "session_token"


class PersistentCache:
    def __init__(self, path: Path | str = CACHE_PATH, ttl_seconds: float = CACHE_TTL_HOURS * 3600) -> None:
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            log.warning("Cache ilegível em %s, descartando", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, default=str)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = {"value": value, "cached_at": time.time()}
        self._save(data)

    def get(self, key: str) -> Any | None:
        data = self._load()
        entry = data.get(key)
        if not isinstance(entry, dict):
            return None
        if time.time() - float(entry.get("cached_at", 0)) > self.ttl_seconds:
            log.info("Cache '%s' expirado, removendo", key)
            data.pop(key, None)
            self._save(data)
            return None
        return entry.get("value")

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    # ===== usuário =====
    def cache_user_data(self, user_id: str, email: str, clinic_id: str | None, role: str, name: str | None = None) -> None:
        self.set(USER_DATA, {"user_id": user_id, "email": email, "clinic_id": clinic_id, "role": role, "name": name})

    def get_cached_user_data(self) -> dict | None:
        return self.get(USER_DATA)

    # ===== clínica =====
    def cache_clinic_data(self, clinic_id: str, name: str, code: str) -> None:
        self.set(CLINIC_DATA, {"clinic_id": clinic_id, "name": name, "code": code})

    def get_cached_clinic_data(self) -> dict | None:
        return self.get(CLINIC_DATA)

    # ===== sessão =====
    def cache_session_token(self, token: str) -> None:
        self.set(SESSION_TOKEN, token)

    def get_session_token(self) -> str | None:
        return self.get(SESSION_TOKEN)

    def clear_all(self) -> None:
        for key in (USER_DATA, CLINIC_DATA, SESSION_TOKEN):
            self.delete(key)
