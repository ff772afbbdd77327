"""
Fixtures compartilhadas.

O banco é SQLite em memória (uma única conexão via StaticPool) e é
recriado a cada teste, já com o catálogo de permissões carregado.
"""
import os

# antes de importar o pacote: settings lê o ambiente no import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest

from clinica_fisio import auth_models  # noqa: F401  (registra a tabela usuarios)
from clinica_fisio.auth_service import autentica, cadastrar_clinica, criar_usuario, get_usuario_by_id
from clinica_fisio.db import Base, engine
from clinica_fisio.models import Papel
from clinica_fisio.permissions import seed_permissoes
from clinica_fisio.services import (
    atualizar_configuracoes,
    criar_paciente,
    criar_profissional,
    criar_sala,
)

SENHA = "segredo123"


@pytest.fixture(autouse=True)
def banco():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    seed_permissoes()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clinica():
    """Clínica com admin e valor de consulta definido."""
    r = cadastrar_clinica("Clínica Teste", "Admin Teste", "admin@teste.com", SENHA)
    atualizar_configuracoes(r.clinic_id, consultation_price="100.00")
    return r


@pytest.fixture
def outra_clinica():
    return cadastrar_clinica("Outra Clínica", "Admin Outra", "admin@outra.com", SENHA)


@pytest.fixture
def admin(clinica):
    return autentica("admin@teste.com", SENHA)


@pytest.fixture
def usuario_factory(clinica):
    def _criar(papel: Papel, email: str | None = None):
        email = email or f"{papel.value}@teste.com"
        clinic_id = None if papel == Papel.SUPER else clinica.clinic_id
        return get_usuario_by_id(criar_usuario(email, SENHA, papel.value.title(), papel, clinic_id))
    return _criar


@pytest.fixture
def paciente_id(clinica):
    return criar_paciente(clinica.clinic_id, "Maria Silva", "(66) 99951-6222", cpf="529.982.247-25")


@pytest.fixture
def profissional_id(clinica):
    return criar_profissional(clinica.clinic_id, "Ana Souza", crefito="12345-F")


@pytest.fixture
def sala_id(clinica):
    return criar_sala(clinica.clinic_id, "Sala 1")
