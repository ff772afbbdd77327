"""
Convites de usuários para uma clínica.

Um convite leva o papel e, opcionalmente, permissões customizadas que viram
grants do usuário quando o convite é aceito.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, update

from .auth_models import Usuario
from .auth_service import _novo_usuario
from .db import db_session
from .errors import ConviteInvalido, ErroDominio, PermissaoNegada, RegistroNaoEncontrado
from .formatters import validate_email
from .models import Clinica, ConviteUsuario, Papel, Permissao, PermissaoUsuario, StatusConvite
from .permissions import validar_concessao
from .settings import INVITE_EXPIRE_DAYS

log = logging.getLogger(__name__)


def _papel(valor: Papel | str) -> Papel:
    try:
        return valor if isinstance(valor, Papel) else Papel(valor)
    except ValueError:
        raise ErroDominio(f"Papel inválido: {valor}") from None


def criar_convite(
    ator: Usuario,
    email: str,
    papel: Papel | str,
    permissoes: list[str] | None = None,
    clinic_id: str | None = None,
) -> dict:
    email = (email or "").strip().lower()
    if not validate_email(email):
        raise ErroDominio("E-mail inválido.")
    papel = _papel(papel)
    if papel == Papel.SUPER and ator.role != Papel.SUPER:
        raise PermissaoNegada("Apenas o super administrador pode convidar outro super.")

    clinic_id = clinic_id or ator.clinic_id
    if not clinic_id:
        raise ErroDominio("Selecione uma clínica para o convite.")
    if ator.role != Papel.SUPER and clinic_id != ator.clinic_id:
        raise PermissaoNegada("Só é possível convidar para a própria clínica.")

    with db_session() as s:
        if permissoes:
            validar_concessao(s, ator, permissoes)
        ja_cadastrado = s.execute(
            select(Usuario.id).where(Usuario.username == email, Usuario.clinic_id == clinic_id)
        ).first()
        if ja_cadastrado:
            raise ErroDominio("Este e-mail já pertence a um usuário da clínica.")

        # um único convite pendente por e-mail e clínica
        s.execute(
            update(ConviteUsuario)
            .where(
                ConviteUsuario.email == email,
                ConviteUsuario.clinic_id == clinic_id,
                ConviteUsuario.status == StatusConvite.PENDING,
            )
            .values(status=StatusConvite.CANCELLED)
        )

        c = ConviteUsuario(
            clinic_id=clinic_id,
            email=email,
            role=papel,
            token=secrets.token_urlsafe(32),
            status=StatusConvite.PENDING,
            permissions=sorted(set(permissoes)) if permissoes else None,
            invited_by=ator.id,
            expires_at=datetime.utcnow() + timedelta(days=INVITE_EXPIRE_DAYS),
        )
        s.add(c)
        s.flush()
        log.info("Convite %s criado para %s (clínica=%s, papel=%s)", c.id, email, clinic_id, papel.value)
        return c.para_dict()


def _problema(c: ConviteUsuario | None) -> str | None:
    """Motivo de recusa do convite; convites vencidos passam a 'expired'."""
    if c is None:
        return "Convite não encontrado."
    if c.status == StatusConvite.ACCEPTED:
        return "Este convite já foi utilizado."
    if c.status == StatusConvite.CANCELLED:
        return "Este convite foi cancelado."
    if c.status == StatusConvite.EXPIRED or c.expires_at < datetime.utcnow():
        c.status = StatusConvite.EXPIRED
        return "Este convite expirou."
    return None


def _por_token(s, token: str) -> ConviteUsuario | None:
    return s.execute(select(ConviteUsuario).where(ConviteUsuario.token == token)).scalar_one_or_none()


def validar_convite(token: str) -> dict:
    """Dados públicos do convite (e-mail, papel e nome da clínica)."""
    with db_session() as s:
        c = _por_token(s, token)
        erro = _problema(c)
        if erro is None:
            clinica = s.get(Clinica, c.clinic_id)
            out = c.para_dict()
            out.pop("token", None)
            out["clinic_name"] = clinica.name if clinica else None
    # fora da sessão para o status 'expired' ser gravado
    if erro:
        raise ConviteInvalido(erro)
    return out


def aceitar_convite(token: str, nome: str, senha: str) -> str:
    """Cria o usuário convidado e devolve o id."""
    with db_session() as s:
        c = _por_token(s, token)
        erro = _problema(c)
        if erro is None:
            u = _novo_usuario(s, c.email, senha, nome, c.role, c.clinic_id)
            if c.permissions:
                perms = s.scalars(select(Permissao).where(Permissao.name.in_(c.permissions)))
                for p in perms:
                    s.add(PermissaoUsuario(user_id=u.id, permission_id=p.id, granted=True))

            c.status = StatusConvite.ACCEPTED
            c.accepted_at = datetime.utcnow()
            log.info("Convite %s aceito (usuário %s)", c.id, u.id)
            user_id = u.id
    if erro:
        raise ConviteInvalido(erro)
    return user_id


def listar_convites(clinic_id: str, status: StatusConvite | None = None) -> list[dict]:
    with db_session() as s:
        q = select(ConviteUsuario).where(ConviteUsuario.clinic_id == clinic_id)
        if status is not None:
            q = q.where(ConviteUsuario.status == status)
        return [c.para_dict() for c in s.scalars(q.order_by(ConviteUsuario.created_at.desc()))]


def _do_tenant(s, clinic_id: str, convite_id: str) -> ConviteUsuario:
    c = s.get(ConviteUsuario, convite_id)
    if not c or c.clinic_id != clinic_id:
        raise RegistroNaoEncontrado("Convite não encontrado.")
    return c


def cancelar_convite(clinic_id: str, convite_id: str) -> None:
    with db_session() as s:
        c = _do_tenant(s, clinic_id, convite_id)
        if c.status != StatusConvite.PENDING:
            raise ErroDominio("Somente convites pendentes podem ser cancelados.")
        c.status = StatusConvite.CANCELLED


def excluir_convite(clinic_id: str, convite_id: str) -> None:
    with db_session() as s:
        s.delete(_do_tenant(s, clinic_id, convite_id))


def link_convite(token: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/convite/{token}"
