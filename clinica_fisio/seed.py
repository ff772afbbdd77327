from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select

from .auth_models import Usuario
from .auth_service import cadastrar_clinica
from .db import db_session
from .models import Clinica, PacoteSessoes, Profissional, Sala
from .permissions import seed_permissoes

log = logging.getLogger(__name__)

DEMO_ADMIN = "admin@fisio.local"
DEMO_SENHA = "fisio123"


def seed_base() -> None:
    """Catálogo de permissões e presets dos papéis (idempotente)."""
    seed_permissoes()


def seed_demo() -> str:
    """
    Clínica de demonstração (idempotente):
    - admin com login DEMO_ADMIN / DEMO_SENHA
    - salas
    - profissionais
    - pacotes de sessões
    Devolve o id da clínica.
    """
    seed_base()
    with db_session() as s:
        existente = s.execute(select(Usuario).where(Usuario.username == DEMO_ADMIN)).scalar_one_or_none()
        clinic_id = existente.clinic_id if existente else None

    if clinic_id is None:
        clinic_id = cadastrar_clinica("Clínica Fisio Demo", "Administrador", DEMO_ADMIN, DEMO_SENHA).clinic_id
        log.info("Clínica demo criada: %s", clinic_id)

    with db_session() as s:
        clinica = s.get(Clinica, clinic_id)
        if clinica.configuracao and clinica.configuracao.consultation_price is None:
            clinica.configuracao.consultation_price = Decimal("120.00")

        # Salas
        for nome, equip in (("Sala 1", ["Maca", "TENS"]), ("Sala 2", ["Bicicleta ergométrica"]), ("Pilates", ["Reformer"])):
            if s.execute(select(Sala).where(Sala.clinic_id == clinic_id, Sala.name == nome)).scalar_one_or_none() is None:
                s.add(Sala(clinic_id=clinic_id, name=nome, equipment=equip))

        # Profissionais
        profissionais = [
            ("Ana Souza", "12345-F", ["Ortopedia", "Esportiva"]),
            ("Carlos Lima", "67890-F", ["Neurologia"]),
        ]
        for nome, crefito, especialidades in profissionais:
            exists = s.execute(
                select(Profissional).where(Profissional.clinic_id == clinic_id, Profissional.name == nome)
            ).scalar_one_or_none()
            if exists is None:
                s.add(Profissional(clinic_id=clinic_id, name=nome, crefito=crefito, specialties=especialidades))

        # Pacotes
        pacotes = [
            ("Pacote 10 sessões", 10, Decimal("1000.00"), 90),
            ("Pacote 20 sessões", 20, Decimal("1800.00"), 180),
        ]
        for nome, sessoes, preco, validade in pacotes:
            exists = s.execute(
                select(PacoteSessoes).where(PacoteSessoes.clinic_id == clinic_id, PacoteSessoes.name == nome)
            ).scalar_one_or_none()
            if exists is None:
                s.add(
                    PacoteSessoes(
                        clinic_id=clinic_id, name=nome, sessions=sessoes, price=preco, validity_days=validade
                    )
                )
    return clinic_id
