"""
Permissões por papel (RBAC) com override por usuário.

Regra de resolução:
- papel super: todas as permissões, inclusive entre clínicas
- usuário com permissões customizadas concedidas: apenas essas
- caso contrário: o preset do papel
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import delete, select

from .auth_models import Usuario
from .db import db_session
from .errors import ErroDominio, PermissaoNegada, RegistroNaoEncontrado
from .models import Papel, Permissao, PermissaoUsuario, PresetPermissao

log = logging.getLogger(__name__)

CRUD = ("create", "read", "update", "delete", "manage")

RECURSOS: dict[str, tuple[str, ...]] = {
    "patients": CRUD,
    "professionals": CRUD,
    "appointments": CRUD,
    "financial": CRUD,
    "leads": CRUD,
    "settings": ("read", "update", "manage"),
    "reports": ("read", "manage"),
    "whatsapp": ("read", "manage"),
    "dashboard": ("read",),
    "system": ("manage_all_clinics", "create_clinics", "delete_clinics", "view_global_stats", "manage_billing"),
    "superadmin": ("manage_users", "manage_permissions", "system_logs", "database_access", "backup_restore"),
}

ROTULOS_ACAO = {
    "create": "Criar",
    "read": "Visualizar",
    "update": "Editar",
    "delete": "Excluir",
    "manage": "Gerenciar",
}

RECURSOS_RESTRITOS = ("system", "superadmin")


def catalogo() -> list[tuple[str, str, str, str]]:
    """(name, resource, action, description) de todas as permissões conhecidas."""
    out = []
    for resource, actions in RECURSOS.items():
        for action in actions:
            desc = f"{ROTULOS_ACAO.get(action, action)} {resource}"
            out.append((f"{resource}.{action}", resource, action, desc))
    return out


TODAS = [nome for nome, *_ in catalogo()]
BASICAS = [n for n in TODAS if not n.startswith(RECURSOS_RESTRITOS)]

ROLE_PRESETS: dict[Papel, list[str]] = {
    Papel.ADMIN: [
        "patients.manage",
        "professionals.manage",
        "appointments.manage",
        "financial.manage",
        "leads.manage",
        "settings.update",
        "reports.read",
        "whatsapp.read",
        "dashboard.read",
    ],
    Papel.PROFESSIONAL: [
        "patients.read",
        "patients.update",
        "appointments.read",
        "appointments.create",
        "appointments.update",
        "financial.read",
        "dashboard.read",
    ],
    Papel.RECEPTIONIST: [
        "patients.create",
        "patients.read",
        "patients.update",
        "appointments.manage",
        "financial.read",
        "leads.read",
        "leads.create",
        "leads.update",
        "dashboard.read",
    ],
    Papel.GUARDIAN: [
        "dashboard.read",
    ],
    Papel.SUPER: list(TODAS),
}


@dataclass(frozen=True)
class ConjuntoPermissoes:
    papel: Papel
    nomes: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, nome: str) -> bool:
        if self.papel == Papel.SUPER:
            return True
        return nome in self.nomes

    def has_any_permission(self, nomes: Iterable[str]) -> bool:
        return any(self.has_permission(n) for n in nomes)

    def can_access(self, resource: str, action: str) -> bool:
        return self.has_permission(f"{resource}.{action}") or self.has_permission(f"{resource}.manage")


# =========================
# Seed
# =========================
def seed_permissoes() -> None:
    """Catálogo e presets (idempotente)."""
    with db_session() as s:
        existentes = {p.name: p for p in s.scalars(select(Permissao))}
        for name, resource, action, desc in catalogo():
            if name not in existentes:
                p = Permissao(name=name, resource=resource, action=action, description=desc, is_active=True)
                s.add(p)
                existentes[name] = p
        s.flush()

        ja = {(pp.role, pp.permission_id) for pp in s.scalars(select(PresetPermissao))}
        for papel, nomes in ROLE_PRESETS.items():
            for nome in nomes:
                pid = existentes[nome].id
                if (papel, pid) not in ja:
                    s.add(PresetPermissao(role=papel, permission_id=pid))


# =========================
# Resolução
# =========================
def presets_do_papel(papel: Papel) -> list[str]:
    with db_session() as s:
        q = (
            select(Permissao.name)
            .join(PresetPermissao, PresetPermissao.permission_id == Permissao.id)
            .where(PresetPermissao.role == papel, Permissao.is_active.is_(True))
            .order_by(Permissao.name)
        )
        return list(s.scalars(q))


def _customizadas(s, user_id: str) -> dict[str, bool]:
    q = (
        select(Permissao.name, PermissaoUsuario.granted)
        .join(Permissao, Permissao.id == PermissaoUsuario.permission_id)
        .where(PermissaoUsuario.user_id == user_id, Permissao.is_active.is_(True))
    )
    return {name: granted for name, granted in s.execute(q).all()}


def permissoes_efetivas(usuario: Usuario) -> ConjuntoPermissoes:
    if usuario.role == Papel.SUPER:
        return ConjuntoPermissoes(usuario.role, frozenset(TODAS))

    with db_session() as s:
        custom = {n for n, granted in _customizadas(s, usuario.id).items() if granted}
    if custom:
        return ConjuntoPermissoes(usuario.role, frozenset(custom))
    return ConjuntoPermissoes(usuario.role, frozenset(presets_do_papel(usuario.role)))


# =========================
# Gestão (admins)
# =========================
def _exigir_gestor(ator: Usuario) -> None:
    if ator.role in (Papel.ADMIN, Papel.SUPER):
        return
    if not permissoes_efetivas(ator).has_permission("settings.manage"):
        raise PermissaoNegada("Sem permissão para gerenciar permissões de outros usuários.")


def _usuario_alvo(s, ator: Usuario, user_id: str) -> Usuario:
    alvo = s.get(Usuario, user_id)
    if not alvo:
        raise RegistroNaoEncontrado("Usuário não encontrado.")
    if ator.role != Papel.SUPER and alvo.clinic_id != ator.clinic_id:
        raise RegistroNaoEncontrado("Usuário não encontrado.")
    return alvo


def listar_catalogo() -> list[dict]:
    with db_session() as s:
        q = (
            select(Permissao)
            .where(Permissao.is_active.is_(True))
            .order_by(Permissao.resource, Permissao.action)
        )
        return [p.para_dict() for p in s.scalars(q)]


def detalhes_permissoes_usuario(ator: Usuario, user_id: str) -> list[dict]:
    """Catálogo anotado com `granted` e `is_custom` para a tela de permissões."""
    _exigir_gestor(ator)
    with db_session() as s:
        alvo = _usuario_alvo(s, ator, user_id)
        custom = _customizadas(s, alvo.id)
        papel = alvo.role

    preset = set(presets_do_papel(papel))
    out = []
    for p in listar_catalogo():
        if p["resource"] in RECURSOS_RESTRITOS and ator.role != Papel.SUPER:
            continue
        is_custom = p["name"] in custom
        p["granted"] = custom[p["name"]] if is_custom else p["name"] in preset
        p["is_custom"] = is_custom
        out.append(p)
    return out


def validar_concessao(s, ator: Usuario, nomes: Iterable[str]) -> dict[str, Permissao]:
    """Permissões do catálogo por nome; recusa nomes desconhecidos e, fora do super, as de sistema."""
    nomes = sorted(set(nomes))
    perms = {p.name: p for p in s.scalars(select(Permissao).where(Permissao.name.in_(nomes)))}
    desconhecidas = [n for n in nomes if n not in perms]
    if desconhecidas:
        raise ErroDominio("Permissões desconhecidas: " + ", ".join(desconhecidas))
    if ator.role != Papel.SUPER and any(n.startswith(RECURSOS_RESTRITOS) for n in nomes):
        raise PermissaoNegada("Permissões de sistema só podem ser concedidas pelo super administrador.")
    return perms


def atualizar_permissoes_usuario(ator: Usuario, user_id: str, nomes: Iterable[str]) -> list[str]:
    """Substitui as permissões customizadas do usuário."""
    _exigir_gestor(ator)
    nomes = sorted(set(nomes))
    with db_session() as s:
        alvo = _usuario_alvo(s, ator, user_id)
        perms = validar_concessao(s, ator, nomes)

        s.execute(delete(PermissaoUsuario).where(PermissaoUsuario.user_id == alvo.id))
        for n in nomes:
            s.add(PermissaoUsuario(user_id=alvo.id, permission_id=perms[n].id, granted=True))
        log.info("Permissões do usuário %s atualizadas por %s (%d)", alvo.id, ator.id, len(nomes))
    return nomes


def aplicar_preset(ator: Usuario, user_id: str, papel: Papel) -> list[str]:
    return atualizar_permissoes_usuario(ator, user_id, presets_do_papel(papel))
