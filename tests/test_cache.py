import json

from clinica_fisio import cache as cache_mod
from clinica_fisio.cache import PersistentCache


def test_grava_e_le(tmp_path):
    c = PersistentCache(tmp_path / "cache.json", ttl_seconds=60)
    c.cache_clinic_data("c1", "Clínica", "clinica-ab12")
    assert c.get_cached_clinic_data() == {"clinic_id": "c1", "name": "Clínica", "code": "clinica-ab12"}


def test_entrada_expirada_e_removida(tmp_path, monkeypatch):
    c = PersistentCache(tmp_path / "cache.json", ttl_seconds=10)
    agora = [1000.0]
    monkeypatch.setattr(cache_mod.time, "time", lambda: agora[0])

    c.cache_session_token("abc")
    assert c.get_session_token() == "abc"

    agora[0] += 11
    assert c.get_session_token() is None
    assert "session_token" not in json.loads((tmp_path / "cache.json").read_text(encoding="utf-8"))


def test_arquivo_corrompido_vira_cache_vazio(tmp_path):
    arq = tmp_path / "cache.json"
    arq.write_text("{nao e json", encoding="utf-8")
    assert PersistentCache(arq).get_cached_user_data() is None


def test_clear_all(tmp_path):
    c = PersistentCache(tmp_path / "cache.json")
    c.cache_user_data("u1", "ana@x.com", "c1", "admin")
    c.cache_session_token("tok")
    c.set("outra", 1)
    c.clear_all()
    assert c.get_cached_user_data() is None
    assert c.get_session_token() is None
    assert c.get("outra") == 1
