from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from clinica_fisio import agenda, dashboard, financeiro, invitations, permissions, services
from clinica_fisio.auth_models import Usuario
from clinica_fisio.auth_security import get_claims
from clinica_fisio.auth_service import (
    autentica,
    cadastrar_clinica,
    desativar_usuario,
    emitir_token,
    get_usuario_by_id,
    listar_usuarios,
    trocar_clinica,
)
from clinica_fisio.errors import (
    ConflitoHorario,
    ErroDominio,
    PermissaoNegada,
    RegistroNaoEncontrado,
)
from clinica_fisio.models import Papel
from clinica_fisio.seed import seed_base
from clinica_fisio.settings import API_BASE, configure_logging

log = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Clínica Fisio API", version="1.0.0")


# Startup

@app.on_event("startup")
def startup() -> None:
    # Cria tabelas (inclusive usuarios) e catálogo de permissões (idempotente)
    configure_logging()
    services.init_db()
    seed_base()


# Erros de domínio

def _erro(status_code: int) -> Callable:
    def handler(request: Request, exc: ErroDominio) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


app.add_exception_handler(RegistroNaoEncontrado, _erro(status.HTTP_404_NOT_FOUND))
app.add_exception_handler(PermissaoNegada, _erro(status.HTTP_403_FORBIDDEN))
app.add_exception_handler(ConflitoHorario, _erro(status.HTTP_409_CONFLICT))
app.add_exception_handler(ErroDominio, _erro(status.HTTP_400_BAD_REQUEST))


# Schemas Auth

class CadastroIn(BaseModel):
    clinic_name: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: str
    password: str
    phone: str | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    full_name: str
    role: str
    clinic_id: str | None
    is_active: bool
    permissions: list[str]


class TrocarClinicaIn(BaseModel):
    clinic_id: str


class ClinicaAtivaIn(BaseModel):
    is_active: bool


class ConviteIn(BaseModel):
    email: str
    role: Papel
    permissions: list[str] | None = None


class AceitarConviteIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    password: str


class PermissoesIn(BaseModel):
    permissions: list[str]


class PresetIn(BaseModel):
    role: Papel


# Schemas Domínio

class PacienteIn(BaseModel):
    full_name: str
    phone: str
    email: str | None = None
    cpf: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    address: dict | None = None
    emergency_contact: dict | None = None
    medical_history: str | None = None
    treatment_type: str | None = None
    insurance: str | None = None
    notes: str | None = None
    session_value: Decimal | None = None
    is_minor: bool = False


class PacienteUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    email: str | None = None
    cpf: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    address: dict | None = None
    emergency_contact: dict | None = None
    medical_history: str | None = None
    treatment_type: str | None = None
    insurance: str | None = None
    notes: str | None = None
    session_value: Decimal | None = None
    is_minor: bool | None = None


class ProfissionalIn(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    crefito: str | None = None
    specialties: list[str] | None = None
    bio: str | None = None


class ProfissionalUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    crefito: str | None = None
    specialties: list[str] | None = None
    bio: str | None = None


class VinculoUsuarioIn(BaseModel):
    usuario_id: str | None = None


class SalaIn(BaseModel):
    name: str
    capacity: int = 1
    equipment: list[str] | None = None


class SalaUpdate(BaseModel):
    name: str | None = None
    capacity: int | None = None
    equipment: list[str] | None = None


class ConfiguracoesIn(BaseModel):
    work_start: time | None = None
    work_end: time | None = None
    lunch_start: time | None = None
    lunch_end: time | None = None
    consultation_price: Decimal | None = None
    timezone: str | None = None


class AnamneseIn(BaseModel):
    chief_complaint: str | None = None
    history_of_present_illness: str | None = None
    past_medical_history: str | None = None
    medications: str | None = None
    allergies: str | None = None
    social_history: str | None = None


class EvolucaoIn(BaseModel):
    professional_id: str
    observations: str
    treatment_performed: str
    date: dt.date | None = None
    pain_scale: int | None = Field(None, ge=0, le=10)
    mobility_scale: int | None = Field(None, ge=0, le=10)
    next_session: str | None = None
    visible_to_guardian: bool = False


class EvolucaoUpdate(BaseModel):
    date: dt.date | None = None
    observations: str | None = None
    treatment_performed: str | None = None
    pain_scale: int | None = Field(None, ge=0, le=10)
    mobility_scale: int | None = Field(None, ge=0, le=10)
    next_session: str | None = None
    visible_to_guardian: bool | None = None


class AgendamentoIn(BaseModel):
    patient_id: str
    professional_id: str
    date: dt.date
    time: dt.time
    duration: int = 45
    treatment_type: str = "consulta"
    price: Decimal | None = None
    room_id: str | None = None
    notes: str | None = None
    pacote_paciente_id: str | None = None
    verificar_conflito: bool = False
    gerar_cobranca: bool = False


class RecorrenciaIn(BaseModel):
    patient_id: str
    professional_id: str
    inicio: date
    time: dt.time
    dias_semana: list[int] = Field(..., min_length=1)
    semanas: int = Field(..., ge=1)
    duration: int = 45
    treatment_type: str = "consulta"
    price: Decimal | None = None
    room_id: str | None = None
    notes: str | None = None
    pacote_paciente_id: str | None = None
    verificar_conflito: bool = False
    gerar_cobranca: bool = False


class AgendamentoUpdate(BaseModel):
    patient_id: str | None = None
    professional_id: str | None = None
    room_id: str | None = None
    date: dt.date | None = None
    time: dt.time | None = None
    duration: int | None = None
    treatment_type: str | None = None
    price: Decimal | None = None
    notes: str | None = None
    pacote_paciente_id: str | None = None


class MoverIn(BaseModel):
    date: dt.date
    time: dt.time
    room_id: str | None = None
    professional_id: str | None = None


class StatusIn(BaseModel):
    status: str


class ContaPagarIn(BaseModel):
    description: str
    amount: Decimal
    due_date: date
    category: str | None = None
    supplier: str | None = None
    notes: str | None = None
    payment_method: str | None = None
    patient_id: str | None = None
    professional_id: str | None = None


class ContaPagarUpdate(BaseModel):
    description: str | None = None
    amount: Decimal | None = None
    due_date: date | None = None
    category: str | None = None
    supplier: str | None = None
    notes: str | None = None
    payment_method: str | None = None
    patient_id: str | None = None
    professional_id: str | None = None


class ContaReceberIn(BaseModel):
    description: str
    amount: Decimal
    due_date: date
    discount_amount: Decimal | None = None
    method: str | None = None
    notes: str | None = None
    patient_id: str | None = None
    professional_id: str | None = None
    appointment_id: str | None = None


class ContaReceberUpdate(BaseModel):
    description: str | None = None
    amount: Decimal | None = None
    due_date: date | None = None
    discount_amount: Decimal | None = None
    method: str | None = None
    notes: str | None = None
    patient_id: str | None = None
    professional_id: str | None = None
    appointment_id: str | None = None


class QuitacaoIn(BaseModel):
    data: date | None = None
    metodo: str | None = None


class LoteIn(BaseModel):
    ids: list[str]
    data: date | None = None
    metodo: str | None = None


class LeadIn(BaseModel):
    name: str
    phone: str
    email: str | None = None
    source: str | None = None
    status: str | None = None
    treatment_interest: str | None = None
    notes: str | None = None
    last_contact: date | None = None
    next_follow_up: date | None = None


class LeadUpdate(BaseModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    source: str | None = None
    status: str | None = None
    treatment_interest: str | None = None
    notes: str | None = None
    last_contact: date | None = None
    next_follow_up: date | None = None


class PacoteIn(BaseModel):
    name: str
    sessions: int
    price: Decimal
    validity_days: int = 90
    description: str | None = None
    treatment_type: str | None = None


class PacoteUpdate(BaseModel):
    name: str | None = None
    sessions: int | None = None
    price: Decimal | None = None
    validity_days: int | None = None
    description: str | None = None
    treatment_type: str | None = None


class VendaPacoteIn(BaseModel):
    package_id: str
    data_compra: date | None = None
    metodo: str | None = None


def _dados(payload: BaseModel) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True)


# Dependências auth

@dataclass(frozen=True)
class Contexto:
    usuario: Usuario
    clinic_id: str
    permissoes: permissions.ConjuntoPermissoes


def get_current_user(token: str = Depends(oauth2_scheme)) -> Usuario:
    # proteção extra: remove espaços / aspas acidentais
    token = token.strip().strip('"').strip("'")

    claims = get_claims(token)
    if not claims or not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    u = get_usuario_by_id(claims["sub"])
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário inválido")
    return u


def get_contexto(token: str = Depends(oauth2_scheme), user: Usuario = Depends(get_current_user)) -> Contexto:
    """Tenant do token: o super escolhe a clínica, os demais ficam na própria."""
    claims = get_claims(token.strip().strip('"').strip("'")) or {}
    clinic_id = claims.get("clinic_id") if user.role == Papel.SUPER else user.clinic_id
    if not clinic_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Selecione uma clínica")
    return Contexto(user, clinic_id, permissions.permissoes_efetivas(user))


def requer(resource: str, action: str) -> Callable[..., Contexto]:
    def dependencia(ctx: Contexto = Depends(get_contexto)) -> Contexto:
        if not ctx.permissoes.can_access(resource, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Sem permissão: {resource}.{action}")
        return ctx
    return dependencia


def requer_sistema(resource: str, action: str) -> Callable[..., Usuario]:
    """Permissões de sistema, fora do tenant."""
    def dependencia(user: Usuario = Depends(get_current_user)) -> Usuario:
        if not permissions.permissoes_efetivas(user).can_access(resource, action):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Sem permissão: {resource}.{action}")
        return user
    return dependencia


# AUTH endpoints

@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")
    return TokenOut(access_token=emitir_token(u))


@app.post("/api/auth/cadastro", response_model=dict)
def cadastro(payload: CadastroIn) -> dict[str, Any]:
    r = cadastrar_clinica(payload.clinic_name, payload.full_name, payload.email, payload.password, payload.phone)
    return {"ok": True, "clinic_id": r.clinic_id, "clinic_code": r.clinic_code, "user_id": r.user_id}


@app.get("/api/me", response_model=MeOut)
def me(token: str = Depends(oauth2_scheme), user: Usuario = Depends(get_current_user)) -> MeOut:
    claims = get_claims(token.strip().strip('"').strip("'")) or {}
    return MeOut(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role=user.role.value,
        clinic_id=claims.get("clinic_id") if user.role == Papel.SUPER else user.clinic_id,
        is_active=user.is_active,
        permissions=sorted(permissions.permissoes_efetivas(user).nomes),
    )


@app.post("/api/auth/trocar-clinica", response_model=TokenOut)
def api_trocar_clinica(payload: TrocarClinicaIn, user: Usuario = Depends(get_current_user)) -> TokenOut:
    return TokenOut(access_token=trocar_clinica(user, payload.clinic_id))


@app.get("/api/clinicas")
def api_clinicas(user: Usuario = Depends(get_current_user)) -> list[dict]:
    if user.role != Papel.SUPER:
        return [services.obter_clinica(user.clinic_id)] if user.clinic_id else []
    return services.listar_clinicas()


# SUPER endpoints

@app.get("/api/sistema/estatisticas")
def api_estatisticas_globais(user: Usuario = Depends(requer_sistema("system", "view_global_stats"))) -> dict[str, Any]:
    return dashboard.estatisticas_globais()


@app.put("/api/sistema/clinicas/{clinic_id}/ativa")
def api_clinica_ativa(
    clinic_id: str,
    payload: ClinicaAtivaIn,
    user: Usuario = Depends(requer_sistema("system", "manage_all_clinics")),
) -> dict[str, Any]:
    return services.definir_clinica_ativa(clinic_id, payload.is_active)


# PUBLIC endpoints (convites, sem JWT)

@app.get("/api/convites/{token}")
def api_validar_convite(token: str) -> dict[str, Any]:
    return invitations.validar_convite(token)


@app.post("/api/convites/{token}/aceitar")
def api_aceitar_convite(token: str, payload: AceitarConviteIn) -> dict[str, Any]:
    user_id = invitations.aceitar_convite(token, payload.full_name, payload.password)
    return {"ok": True, "user_id": user_id}


# Usuários, convites e permissões

@app.get("/api/convites")
def api_listar_convites(ctx: Contexto = Depends(requer("settings", "update"))) -> list[dict]:
    return invitations.listar_convites(ctx.clinic_id)


@app.post("/api/convites")
def api_criar_convite(payload: ConviteIn, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    c = invitations.criar_convite(ctx.usuario, payload.email, payload.role, payload.permissions, ctx.clinic_id)
    c["link"] = invitations.link_convite(c["token"], API_BASE)
    return c


@app.post("/api/convites/{convite_id}/cancelar")
def api_cancelar_convite(convite_id: str, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    invitations.cancelar_convite(ctx.clinic_id, convite_id)
    return {"ok": True}


@app.delete("/api/convites/{convite_id}")
def api_excluir_convite(convite_id: str, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    invitations.excluir_convite(ctx.clinic_id, convite_id)
    return {"ok": True}


@app.get("/api/usuarios")
def api_usuarios(ctx: Contexto = Depends(requer("settings", "update"))) -> list[dict]:
    return listar_usuarios(ctx.clinic_id)


@app.delete("/api/usuarios/{user_id}")
def api_desativar_usuario(user_id: str, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    if user_id == ctx.usuario.id:
        raise HTTPException(status_code=400, detail="Não é possível desativar o próprio usuário")
    desativar_usuario(ctx.clinic_id, user_id)
    return {"ok": True}


@app.get("/api/permissoes")
def api_permissoes(user: Usuario = Depends(get_current_user)) -> list[dict]:
    return permissions.listar_catalogo()


@app.get("/api/usuarios/{user_id}/permissoes")
def api_permissoes_usuario(user_id: str, user: Usuario = Depends(get_current_user)) -> list[dict]:
    return permissions.detalhes_permissoes_usuario(user, user_id)


@app.put("/api/usuarios/{user_id}/permissoes")
def api_atualizar_permissoes(
    user_id: str, payload: PermissoesIn, user: Usuario = Depends(get_current_user)
) -> dict[str, Any]:
    return {"permissions": permissions.atualizar_permissoes_usuario(user, user_id, payload.permissions)}


@app.post("/api/usuarios/{user_id}/preset")
def api_aplicar_preset(user_id: str, payload: PresetIn, user: Usuario = Depends(get_current_user)) -> dict[str, Any]:
    return {"permissions": permissions.aplicar_preset(user, user_id, payload.role)}


# Configurações

@app.get("/api/configuracoes")
def api_configuracoes(ctx: Contexto = Depends(get_contexto)) -> dict[str, Any]:
    return services.obter_configuracoes(ctx.clinic_id)


@app.put("/api/configuracoes")
def api_atualizar_configuracoes(
    payload: ConfiguracoesIn, ctx: Contexto = Depends(requer("settings", "update"))
) -> dict[str, Any]:
    return services.atualizar_configuracoes(ctx.clinic_id, **_dados(payload))


# Pacientes

@app.get("/api/pacientes")
def api_pacientes(
    busca: str | None = None,
    ativos: bool | None = True,
    ctx: Contexto = Depends(requer("patients", "read")),
) -> list[dict]:
    return services.listar_pacientes(ctx.clinic_id, busca=busca, ativos=ativos)


@app.post("/api/pacientes")
def api_criar_paciente(payload: PacienteIn, ctx: Contexto = Depends(requer("patients", "create"))) -> dict[str, Any]:
    dados = payload.model_dump()
    pid = services.criar_paciente(ctx.clinic_id, dados.pop("full_name"), dados.pop("phone"), **dados)
    return {"ok": True, "paciente_id": pid}


@app.get("/api/pacientes/{paciente_id}")
def api_paciente(paciente_id: str, ctx: Contexto = Depends(requer("patients", "read"))) -> dict[str, Any]:
    return services.obter_paciente(ctx.clinic_id, paciente_id)


@app.put("/api/pacientes/{paciente_id}")
def api_atualizar_paciente(
    paciente_id: str, payload: PacienteUpdate, ctx: Contexto = Depends(requer("patients", "update"))
) -> dict[str, Any]:
    return services.atualizar_paciente(ctx.clinic_id, paciente_id, **_dados(payload))


@app.delete("/api/pacientes/{paciente_id}")
def api_desativar_paciente(paciente_id: str, ctx: Contexto = Depends(requer("patients", "delete"))) -> dict[str, Any]:
    services.desativar_paciente(ctx.clinic_id, paciente_id)
    return {"ok": True}


@app.post("/api/pacientes/{paciente_id}/reativar")
def api_reativar_paciente(paciente_id: str, ctx: Contexto = Depends(requer("patients", "update"))) -> dict[str, Any]:
    services.reativar_paciente(ctx.clinic_id, paciente_id)
    return {"ok": True}


@app.get("/api/pacientes/{paciente_id}/prontuario")
def api_prontuario(paciente_id: str, ctx: Contexto = Depends(requer("patients", "read"))) -> dict[str, Any]:
    return services.obter_ou_criar_prontuario(ctx.clinic_id, paciente_id)


@app.put("/api/pacientes/{paciente_id}/anamnese")
def api_anamnese(
    paciente_id: str, payload: AnamneseIn, ctx: Contexto = Depends(requer("patients", "update"))
) -> dict[str, Any]:
    return services.atualizar_anamnese(ctx.clinic_id, paciente_id, _dados(payload))


@app.get("/api/pacientes/{paciente_id}/evolucoes")
def api_evolucoes(
    paciente_id: str,
    apenas_visiveis_responsavel: bool = False,
    ctx: Contexto = Depends(requer("patients", "read")),
) -> list[dict]:
    # responsável (guardian) só vê as evoluções liberadas
    if ctx.usuario.role == Papel.GUARDIAN:
        apenas_visiveis_responsavel = True
    return services.listar_evolucoes(ctx.clinic_id, paciente_id, apenas_visiveis_responsavel)


@app.post("/api/pacientes/{paciente_id}/evolucoes")
def api_criar_evolucao(
    paciente_id: str, payload: EvolucaoIn, ctx: Contexto = Depends(requer("patients", "update"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    ev_id = services.adicionar_evolucao(
        ctx.clinic_id,
        paciente_id,
        dados.pop("professional_id"),
        dados.pop("observations"),
        dados.pop("treatment_performed"),
        data=dados.pop("date"),
        **dados,
    )
    return {"ok": True, "evolucao_id": ev_id}


@app.put("/api/evolucoes/{evolucao_id}")
def api_atualizar_evolucao(
    evolucao_id: str, payload: EvolucaoUpdate, ctx: Contexto = Depends(requer("patients", "update"))
) -> dict[str, Any]:
    return services.atualizar_evolucao(ctx.clinic_id, evolucao_id, **_dados(payload))


@app.delete("/api/evolucoes/{evolucao_id}")
def api_excluir_evolucao(evolucao_id: str, ctx: Contexto = Depends(requer("patients", "update"))) -> dict[str, Any]:
    services.excluir_evolucao(ctx.clinic_id, evolucao_id)
    return {"ok": True}


@app.get("/api/pacientes/{paciente_id}/pacotes")
def api_pacotes_paciente(paciente_id: str, ctx: Contexto = Depends(requer("patients", "read"))) -> list[dict]:
    return services.listar_pacotes_paciente(ctx.clinic_id, paciente_id)


@app.post("/api/pacientes/{paciente_id}/pacotes")
def api_vender_pacote(
    paciente_id: str, payload: VendaPacoteIn, ctx: Contexto = Depends(requer("financial", "create"))
) -> dict[str, Any]:
    pp_id = services.vender_pacote(ctx.clinic_id, paciente_id, payload.package_id, payload.data_compra, payload.metodo)
    return {"ok": True, "pacote_paciente_id": pp_id}


@app.post("/api/pacotes-paciente/{pp_id}/consumir")
def api_consumir_sessao(pp_id: str, ctx: Contexto = Depends(requer("appointments", "update"))) -> dict[str, Any]:
    return {"ok": True, "sessoes_restantes": services.consumir_sessao(ctx.clinic_id, pp_id)}


@app.get("/api/pacientes/{paciente_id}/financeiro")
def api_financeiro_paciente(paciente_id: str, ctx: Contexto = Depends(requer("financial", "read"))) -> dict[str, Any]:
    return financeiro.relatorio_financeiro_paciente(ctx.clinic_id, paciente_id)


# Profissionais

@app.get("/api/profissionais")
def api_profissionais(
    apenas_ativos: bool = True, ctx: Contexto = Depends(requer("appointments", "read"))
) -> list[dict]:
    return services.listar_profissionais(ctx.clinic_id, apenas_ativos)


@app.post("/api/profissionais")
def api_criar_profissional(
    payload: ProfissionalIn, ctx: Contexto = Depends(requer("professionals", "create"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    return {"ok": True, "profissional_id": services.criar_profissional(ctx.clinic_id, dados.pop("name"), **dados)}


@app.put("/api/profissionais/{profissional_id}")
def api_atualizar_profissional(
    profissional_id: str, payload: ProfissionalUpdate, ctx: Contexto = Depends(requer("professionals", "update"))
) -> dict[str, Any]:
    return services.atualizar_profissional(ctx.clinic_id, profissional_id, **_dados(payload))


@app.delete("/api/profissionais/{profissional_id}")
def api_desativar_profissional(
    profissional_id: str, ctx: Contexto = Depends(requer("professionals", "delete"))
) -> dict[str, Any]:
    services.desativar_profissional(ctx.clinic_id, profissional_id)
    return {"ok": True}


@app.put("/api/profissionais/{profissional_id}/usuario")
def api_vincular_usuario(
    profissional_id: str, payload: VinculoUsuarioIn, ctx: Contexto = Depends(requer("professionals", "update"))
) -> dict[str, Any]:
    services.vincular_usuario(ctx.clinic_id, profissional_id, payload.usuario_id)
    return {"ok": True}


@app.get("/api/profissionais/{profissional_id}/relatorio")
def api_relatorio_profissional(
    profissional_id: str,
    inicio: date | None = None,
    fim: date | None = None,
    ctx: Contexto = Depends(requer("financial", "read")),
) -> dict[str, Any]:
    return financeiro.relatorio_financeiro_profissional(ctx.clinic_id, profissional_id, inicio, fim)


# Salas

@app.get("/api/salas")
def api_salas(ctx: Contexto = Depends(requer("appointments", "read"))) -> list[dict]:
    return services.listar_salas(ctx.clinic_id)


@app.post("/api/salas")
def api_criar_sala(payload: SalaIn, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    return {"ok": True, "sala_id": services.criar_sala(ctx.clinic_id, payload.name, payload.capacity, payload.equipment)}


@app.put("/api/salas/{sala_id}")
def api_atualizar_sala(
    sala_id: str, payload: SalaUpdate, ctx: Contexto = Depends(requer("settings", "update"))
) -> dict[str, Any]:
    return services.atualizar_sala(ctx.clinic_id, sala_id, **_dados(payload))


@app.delete("/api/salas/{sala_id}")
def api_desativar_sala(sala_id: str, ctx: Contexto = Depends(requer("settings", "update"))) -> dict[str, Any]:
    services.desativar_sala(ctx.clinic_id, sala_id)
    return {"ok": True}


# Agenda

@app.get("/api/agenda/dia")
def api_agenda_dia(
    dia: date = Query(...),
    profissional_id: str | None = None,
    sala_id: str | None = None,
    status_: str | None = Query(None, alias="status"),
    ctx: Contexto = Depends(requer("appointments", "read")),
) -> list[dict]:
    return agenda.agenda_dia(ctx.clinic_id, dia, profissional_id, sala_id, status_)


@app.get("/api/agenda/semana")
def api_agenda_semana(
    dia: date = Query(...),
    profissional_id: str | None = None,
    sala_id: str | None = None,
    status_: str | None = Query(None, alias="status"),
    ctx: Contexto = Depends(requer("appointments", "read")),
) -> list[dict]:
    return agenda.agenda_semana(ctx.clinic_id, dia, profissional_id, sala_id, status_)


@app.get("/api/agenda/duracoes")
def api_duracoes(ctx: Contexto = Depends(requer("appointments", "read"))) -> list[dict]:
    return [{"minutos": m, "label": label} for m, label in agenda.DURATION_OPTIONS]


@app.get("/api/agenda/disponiveis")
def api_horarios_disponiveis(
    dia: date = Query(...),
    duracao: int = Query(45, gt=0),
    profissional_id: str | None = None,
    ctx: Contexto = Depends(requer("appointments", "read")),
) -> list[str]:
    return agenda.horarios_disponiveis(ctx.clinic_id, dia, duracao, profissional_id)


@app.post("/api/agendamentos")
def api_criar_agendamento(
    payload: AgendamentoIn, ctx: Contexto = Depends(requer("appointments", "create"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    ag_id = agenda.criar_agendamento(
        ctx.clinic_id,
        dados.pop("patient_id"),
        dados.pop("professional_id"),
        dados.pop("date"),
        dados.pop("time"),
        **dados,
    )
    return {"ok": True, "agendamento_id": ag_id}


@app.post("/api/agendamentos/recorrentes")
def api_criar_recorrentes(
    payload: RecorrenciaIn, ctx: Contexto = Depends(requer("appointments", "create"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    ids = agenda.criar_agendamentos_recorrentes(
        ctx.clinic_id,
        dados.pop("patient_id"),
        dados.pop("professional_id"),
        dados.pop("inicio"),
        dados.pop("time"),
        dados.pop("dias_semana"),
        dados.pop("semanas"),
        **dados,
    )
    return {"ok": True, "agendamento_ids": ids, "total": len(ids)}


@app.put("/api/agendamentos/{agendamento_id}")
def api_atualizar_agendamento(
    agendamento_id: str, payload: AgendamentoUpdate, ctx: Contexto = Depends(requer("appointments", "update"))
) -> dict[str, Any]:
    return agenda.atualizar_agendamento(ctx.clinic_id, agendamento_id, **_dados(payload))


@app.post("/api/agendamentos/{agendamento_id}/mover")
def api_mover_agendamento(
    agendamento_id: str, payload: MoverIn, ctx: Contexto = Depends(requer("appointments", "update"))
) -> dict[str, Any]:
    return agenda.mover_agendamento(
        ctx.clinic_id, agendamento_id, payload.date, payload.time, payload.room_id, payload.professional_id
    )


@app.post("/api/agendamentos/{agendamento_id}/status")
def api_status_agendamento(
    agendamento_id: str, payload: StatusIn, ctx: Contexto = Depends(requer("appointments", "update"))
) -> dict[str, Any]:
    return agenda.alterar_status(ctx.clinic_id, agendamento_id, payload.status)


@app.delete("/api/agendamentos/{agendamento_id}")
def api_excluir_agendamento(
    agendamento_id: str, ctx: Contexto = Depends(requer("appointments", "delete"))
) -> dict[str, Any]:
    agenda.excluir_agendamento(ctx.clinic_id, agendamento_id)
    return {"ok": True}


@app.delete("/api/recorrencias/{recorrencia_id}")
def api_excluir_recorrencia(
    recorrencia_id: str,
    a_partir_de: date | None = None,
    ctx: Contexto = Depends(requer("appointments", "delete")),
) -> dict[str, Any]:
    return {"ok": True, "excluidos": agenda.excluir_recorrencia(ctx.clinic_id, recorrencia_id, a_partir_de)}


# Financeiro

def _filtros(
    status_: str | None = Query(None, alias="status"),
    busca: str | None = None,
    periodo: str = "todos",
    inicio: date | None = None,
    fim: date | None = None,
    paciente_id: str | None = None,
    valor_min: Decimal | None = None,
    valor_max: Decimal | None = None,
) -> dict[str, Any]:
    return {
        "status": status_,
        "busca": busca,
        "periodo": periodo,
        "inicio": inicio,
        "fim": fim,
        "paciente_id": paciente_id,
        "valor_min": valor_min,
        "valor_max": valor_max,
    }


@app.get("/api/financeiro/pagar")
def api_contas_pagar(
    filtros: dict = Depends(_filtros), ctx: Contexto = Depends(requer("financial", "read"))
) -> list[dict]:
    return financeiro.filtrar_contas(financeiro.listar_contas_pagar(ctx.clinic_id), **filtros)


@app.post("/api/financeiro/pagar")
def api_criar_conta_pagar(
    payload: ContaPagarIn, ctx: Contexto = Depends(requer("financial", "create"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    conta_id = financeiro.criar_conta_pagar(
        ctx.clinic_id, dados.pop("description"), dados.pop("amount"), dados.pop("due_date"), **dados
    )
    return {"ok": True, "conta_id": conta_id}


@app.put("/api/financeiro/pagar/{conta_id}")
def api_atualizar_conta_pagar(
    conta_id: str, payload: ContaPagarUpdate, ctx: Contexto = Depends(requer("financial", "update"))
) -> dict[str, Any]:
    return financeiro.atualizar_conta_pagar(ctx.clinic_id, conta_id, **_dados(payload))


@app.delete("/api/financeiro/pagar/{conta_id}")
def api_excluir_conta_pagar(conta_id: str, ctx: Contexto = Depends(requer("financial", "delete"))) -> dict[str, Any]:
    financeiro.excluir_conta_pagar(ctx.clinic_id, conta_id)
    return {"ok": True}


@app.post("/api/financeiro/pagar/{conta_id}/pagar")
def api_pagar_conta(
    conta_id: str, payload: QuitacaoIn, ctx: Contexto = Depends(requer("financial", "update"))
) -> dict[str, Any]:
    return financeiro.marcar_pagar_como_pago(ctx.clinic_id, conta_id, payload.data, payload.metodo)


@app.post("/api/financeiro/pagar/{conta_id}/cancelar")
def api_cancelar_conta_pagar(conta_id: str, ctx: Contexto = Depends(requer("financial", "update"))) -> dict[str, Any]:
    financeiro.cancelar_conta_pagar(ctx.clinic_id, conta_id)
    return {"ok": True}


@app.post("/api/financeiro/pagar-lote/pagar")
def api_pagar_lote(payload: LoteIn, ctx: Contexto = Depends(requer("financial", "update"))) -> dict[str, Any]:
    return {"ok": True, "alteradas": financeiro.marcar_pagar_em_lote(ctx.clinic_id, payload.ids, payload.data)}


@app.post("/api/financeiro/pagar-lote/excluir")
def api_excluir_pagar_lote(payload: LoteIn, ctx: Contexto = Depends(requer("financial", "delete"))) -> dict[str, Any]:
    return {"ok": True, "excluidas": financeiro.excluir_pagar_em_lote(ctx.clinic_id, payload.ids)}


@app.get("/api/financeiro/receber")
def api_contas_receber(
    filtros: dict = Depends(_filtros), ctx: Contexto = Depends(requer("financial", "read"))
) -> list[dict]:
    return financeiro.filtrar_contas(financeiro.listar_contas_receber(ctx.clinic_id), **filtros)


@app.post("/api/financeiro/receber")
def api_criar_conta_receber(
    payload: ContaReceberIn, ctx: Contexto = Depends(requer("financial", "create"))
) -> dict[str, Any]:
    dados = payload.model_dump()
    conta_id = financeiro.criar_conta_receber(
        ctx.clinic_id, dados.pop("description"), dados.pop("amount"), dados.pop("due_date"), **dados
    )
    return {"ok": True, "conta_id": conta_id}


@app.put("/api/financeiro/receber/{conta_id}")
def api_atualizar_conta_receber(
    conta_id: str, payload: ContaReceberUpdate, ctx: Contexto = Depends(requer("financial", "update"))
) -> dict[str, Any]:
    return financeiro.atualizar_conta_receber(ctx.clinic_id, conta_id, **_dados(payload))


@app.delete("/api/financeiro/receber/{conta_id}")
def api_excluir_conta_receber(conta_id: str, ctx: Contexto = Depends(requer("financial", "delete"))) -> dict[str, Any]:
    financeiro.excluir_conta_receber(ctx.clinic_id, conta_id)
    return {"ok": True}


@app.post("/api/financeiro/receber/{conta_id}/receber")
def api_receber_conta(
    conta_id: str, payload: QuitacaoIn, ctx: Contexto = Depends(requer("financial", "update"))
) -> dict[str, Any]:
    return financeiro.marcar_receber_como_recebido(ctx.clinic_id, conta_id, payload.metodo, payload.data)


@app.post("/api/financeiro/receber/{conta_id}/cancelar")
def api_cancelar_conta_receber(conta_id: str, ctx: Contexto = Depends(requer("financial", "update"))) -> dict[str, Any]:
    financeiro.cancelar_conta_receber(ctx.clinic_id, conta_id)
    return {"ok": True}


@app.post("/api/financeiro/receber-lote/receber")
def api_receber_lote(payload: LoteIn, ctx: Contexto = Depends(requer("financial", "update"))) -> dict[str, Any]:
    n = financeiro.marcar_receber_em_lote(ctx.clinic_id, payload.ids, payload.metodo, payload.data)
    return {"ok": True, "alteradas": n}


@app.post("/api/financeiro/receber-lote/excluir")
def api_excluir_receber_lote(
    payload: LoteIn, ctx: Contexto = Depends(requer("financial", "delete"))
) -> dict[str, Any]:
    return {"ok": True, "excluidas": financeiro.excluir_receber_em_lote(ctx.clinic_id, payload.ids)}


@app.get("/api/financeiro/resumo")
def api_resumo(ctx: Contexto = Depends(requer("financial", "read"))) -> dict[str, Any]:
    return financeiro.resumo_financeiro(ctx.clinic_id)


@app.get("/api/financeiro/vencidas")
def api_vencidas(ctx: Contexto = Depends(requer("financial", "read"))) -> dict[str, Any]:
    return financeiro.contas_vencidas(ctx.clinic_id)


@app.get("/api/relatorios/categorias")
def api_despesas_categoria(
    inicio: date | None = None, fim: date | None = None, ctx: Contexto = Depends(requer("reports", "read"))
) -> dict[str, Any]:
    return financeiro.despesas_por_categoria(ctx.clinic_id, inicio, fim)


@app.get("/api/relatorios/metodos")
def api_receitas_metodo(
    inicio: date | None = None, fim: date | None = None, ctx: Contexto = Depends(requer("reports", "read"))
) -> dict[str, Any]:
    return financeiro.receitas_por_metodo(ctx.clinic_id, inicio, fim)


@app.get("/api/relatorios/fluxo-caixa")
def api_fluxo_caixa(
    meses: int = Query(6, ge=1, le=24), ctx: Contexto = Depends(requer("reports", "read"))
) -> list[dict]:
    return financeiro.fluxo_caixa_mensal(ctx.clinic_id, meses)


@app.get("/api/relatorios/periodo")
def api_relatorio_periodo(
    inicio: date = Query(...), fim: date = Query(...), ctx: Contexto = Depends(requer("reports", "read"))
) -> dict[str, Any]:
    return financeiro.relatorio_periodo(ctx.clinic_id, inicio, fim)


# Leads (CRM)

@app.get("/api/leads")
def api_leads(status_: str | None = Query(None, alias="status"), ctx: Contexto = Depends(requer("leads", "read"))) -> list[dict]:
    return services.listar_leads(ctx.clinic_id, status_)


@app.get("/api/leads/kanban")
def api_leads_kanban(ctx: Contexto = Depends(requer("leads", "read"))) -> dict[str, list[dict]]:
    return services.leads_por_status(ctx.clinic_id)


@app.post("/api/leads")
def api_criar_lead(payload: LeadIn, ctx: Contexto = Depends(requer("leads", "create"))) -> dict[str, Any]:
    dados = _dados(payload)
    lead_id = services.criar_lead(ctx.clinic_id, dados.pop("name"), dados.pop("phone"), **dados)
    return {"ok": True, "lead_id": lead_id}


@app.put("/api/leads/{lead_id}")
def api_atualizar_lead(
    lead_id: str, payload: LeadUpdate, ctx: Contexto = Depends(requer("leads", "update"))
) -> dict[str, Any]:
    return services.atualizar_lead(ctx.clinic_id, lead_id, **_dados(payload))


@app.delete("/api/leads/{lead_id}")
def api_excluir_lead(lead_id: str, ctx: Contexto = Depends(requer("leads", "delete"))) -> dict[str, Any]:
    services.excluir_lead(ctx.clinic_id, lead_id)
    return {"ok": True}


@app.post("/api/leads/{lead_id}/converter")
def api_converter_lead(lead_id: str, ctx: Contexto = Depends(requer("patients", "create"))) -> dict[str, Any]:
    return {"ok": True, "paciente_id": services.converter_lead(ctx.clinic_id, lead_id)}


# Pacotes de sessões

@app.get("/api/pacotes")
def api_pacotes(apenas_ativos: bool = True, ctx: Contexto = Depends(requer("financial", "read"))) -> list[dict]:
    return services.listar_pacotes(ctx.clinic_id, apenas_ativos)


@app.post("/api/pacotes")
def api_criar_pacote(payload: PacoteIn, ctx: Contexto = Depends(requer("financial", "create"))) -> dict[str, Any]:
    dados = payload.model_dump()
    pacote_id = services.criar_pacote(
        ctx.clinic_id, dados.pop("name"), dados.pop("sessions"), dados.pop("price"), **dados
    )
    return {"ok": True, "pacote_id": pacote_id}


@app.put("/api/pacotes/{pacote_id}")
def api_atualizar_pacote(
    pacote_id: str, payload: PacoteUpdate, ctx: Contexto = Depends(requer("financial", "update"))
) -> dict[str, Any]:
    return services.atualizar_pacote(ctx.clinic_id, pacote_id, **_dados(payload))


@app.delete("/api/pacotes/{pacote_id}")
def api_desativar_pacote(pacote_id: str, ctx: Contexto = Depends(requer("financial", "delete"))) -> dict[str, Any]:
    services.desativar_pacote(ctx.clinic_id, pacote_id)
    return {"ok": True}


# Dashboard

@app.get("/api/dashboard")
def api_dashboard(ctx: Contexto = Depends(requer("dashboard", "read"))) -> dict[str, Any]:
    return dashboard.estatisticas_dashboard(ctx.clinic_id)
