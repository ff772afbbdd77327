from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinica_fisio.auth_models import Usuario
from clinica_fisio.auth_security import create_access_token, hash_password, verify_password
from clinica_fisio.db import db_session
from clinica_fisio.errors import ErroDominio, PermissaoNegada, RegistroNaoEncontrado
from clinica_fisio.formatters import require_fields, validate_email
from clinica_fisio.models import Clinica, ConfiguracaoClinica, Papel

log = logging.getLogger(__name__)

MIN_SENHA = 6


@dataclass(frozen=True)
class ResultadoCadastro:
    clinic_id: str
    clinic_code: str
    user_id: str


def _normaliza_username(username: str) -> str:
    return (username or "").strip().lower()


def _novo_usuario(
    s: Session,
    username: str,
    password: str,
    full_name: str,
    role: Papel,
    clinic_id: str | None,
) -> Usuario:
    username = _normaliza_username(username)
    require_fields(
        {"username": username, "password": password, "full_name": full_name},
        {"username": "e-mail", "password": "senha", "full_name": "nome"},
    )
    if not validate_email(username):
        raise ErroDominio("E-mail inválido.")
    if len(password) < MIN_SENHA:
        raise ErroDominio(f"A senha deve ter pelo menos {MIN_SENHA} caracteres.")
    if role != Papel.SUPER and not clinic_id:
        raise ErroDominio("Usuário precisa estar vinculado a uma clínica.")

    exists = s.execute(select(Usuario).where(Usuario.username == username)).scalar_one_or_none()
    if exists:
        raise ErroDominio("E-mail já cadastrado.")

    u = Usuario(
        username=username,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        role=role,
        clinic_id=clinic_id,
        is_active=True,
    )
    s.add(u)
    s.flush()
    log.info("Usuário %s criado (papel=%s, clínica=%s)", u.id, role.value, clinic_id)
    return u


def criar_usuario(
    username: str,
    password: str,
    full_name: str,
    role: Papel = Papel.RECEPTIONIST,
    clinic_id: str | None = None,
) -> str:
    with db_session() as s:
        return _novo_usuario(s, username, password, full_name, role, clinic_id).id


def _gerar_codigo_clinica(s: Session, nome: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", nome.strip().lower()).strip("-")[:24] or "clinica"
    while True:
        code = f"{base}-{secrets.token_hex(2)}"
        if s.execute(select(Clinica.id).where(Clinica.clinic_code == code)).first() is None:
            return code


def cadastrar_clinica(
    nome_clinica: str,
    admin_nome: str,
    admin_email: str,
    admin_senha: str,
    telefone: str | None = None,
) -> ResultadoCadastro:
    """
    Cadastro inicial (sign-up):
    - cria a clínica com código único
    - cria a configuração padrão
    - cria o usuário admin da clínica
    """
    require_fields({"nome_clinica": nome_clinica}, {"nome_clinica": "nome da clínica"})
    with db_session() as s:
        clinica = Clinica(
            name=nome_clinica.strip(),
            clinic_code=_gerar_codigo_clinica(s, nome_clinica),
            email=_normaliza_username(admin_email) or None,
            phone=telefone,
        )
        s.add(clinica)
        s.flush()
        s.add(ConfiguracaoClinica(clinic_id=clinica.id))

        admin = _novo_usuario(s, admin_email, admin_senha, admin_nome, Papel.ADMIN, clinica.id)
        log.info("Clínica %s cadastrada (%s)", clinica.id, clinica.clinic_code)
        return ResultadoCadastro(clinica.id, clinica.clinic_code, admin.id)


def autentica(username: str, password: str) -> Usuario | None:
    username = _normaliza_username(username)
    with db_session() as s:
        u = s.execute(select(Usuario).where(Usuario.username == username)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            log.warning("Falha de login para %s", username)
            return None
        return u


def get_usuario_by_id(user_id: str) -> Usuario | None:
    with db_session() as s:
        return s.get(Usuario, user_id)


def emitir_token(u: Usuario, clinic_id: str | None = None) -> str:
    return create_access_token(
        subject=u.id,
        extra={
            "username": u.username,
            "role": u.role.value,
            "clinic_id": clinic_id if clinic_id is not None else u.clinic_id,
        },
    )


def trocar_clinica(u: Usuario, clinic_id: str) -> str:
    """Só o papel super atua em qualquer clínica; devolve um token novo para o tenant escolhido."""
    if u.role != Papel.SUPER:
        raise PermissaoNegada("Apenas o super administrador pode trocar de clínica.")
    with db_session() as s:
        clinica = s.get(Clinica, clinic_id)
        if not clinica or not clinica.is_active:
            raise RegistroNaoEncontrado("Clínica não encontrada.")
    return emitir_token(u, clinic_id=clinic_id)


def desativar_usuario(clinic_id: str, user_id: str) -> None:
    with db_session() as s:
        u = s.get(Usuario, user_id)
        if not u or u.clinic_id != clinic_id:
            raise RegistroNaoEncontrado("Usuário não encontrado.")
        u.is_active = False


def listar_usuarios(clinic_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(select(Usuario).where(Usuario.clinic_id == clinic_id).order_by(Usuario.full_name))
        return [u.para_dict() for u in rows]
