from __future__ import annotations

import logging
from datetime import date, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .auth_models import Usuario
from .db import Base, db_session, engine
from .errors import ErroDominio, PacoteIndisponivel, RegistroNaoEncontrado
from .formatters import normalize_cpf, normalize_phone, require_fields, validate_cpf, validate_email
from .models import (
    Clinica,
    ConfiguracaoClinica,
    ContaReceber,
    Evolucao,
    Genero,
    Lead,
    MetodoPagamento,
    OrigemLead,
    PacotePaciente,
    PacoteSessoes,
    Paciente,
    Profissional,
    Prontuario,
    Sala,
    StatusConta,
    StatusLead,
    StatusPacotePaciente,
)

log = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Cria as tabelas se não existirem (inclusive usuarios)."""
    Base.metadata.create_all(bind=engine)


# =========================
# Helpers
# =========================
def do_tenant(s: Session, model: type, clinic_id: str, obj_id: str, rotulo: str):
    """Linha de outra clínica é tratada como inexistente."""
    obj = s.get(model, obj_id) if obj_id else None
    if obj is None or obj.clinic_id != clinic_id:
        raise RegistroNaoEncontrado(f"{rotulo} não encontrado.")
    return obj


def para_decimal(valor: Any, rotulo: str = "valor") -> Decimal | None:
    if valor is None or valor == "":
        return None
    try:
        return Decimal(str(valor)).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ErroDominio(f"{rotulo.capitalize()} inválido.") from None


def _enum(enum_cls, valor, rotulo: str):
    if valor is None or isinstance(valor, enum_cls):
        return valor
    try:
        return enum_cls(valor)
    except ValueError:
        raise ErroDominio(f"{rotulo} inválido: {valor}") from None


def _aplicar(obj: Any, dados: dict[str, Any], campos: tuple[str, ...]) -> None:
    desconhecidos = set(dados) - set(campos)
    if desconhecidos:
        raise ErroDominio("Campos não editáveis: " + ", ".join(sorted(desconhecidos)))
    for k, v in dados.items():
        setattr(obj, k, v)


# =========================
# Clínicas
# =========================
def listar_clinicas(apenas_ativas: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(Clinica).order_by(Clinica.name)
        if apenas_ativas:
            q = q.where(Clinica.is_active.is_(True))
        return [c.para_dict() for c in s.scalars(q)]


def obter_clinica(clinic_id: str) -> dict:
    with db_session() as s:
        c = s.get(Clinica, clinic_id)
        if not c:
            raise RegistroNaoEncontrado("Clínica não encontrada.")
        return c.para_dict()


def definir_clinica_ativa(clinic_id: str, ativa: bool) -> dict:
    with db_session() as s:
        c = s.get(Clinica, clinic_id)
        if not c:
            raise RegistroNaoEncontrado("Clínica não encontrada.")
        c.is_active = ativa
        log.info("Clínica %s %s", clinic_id, "ativada" if ativa else "desativada")
        return c.para_dict()


# =========================
# Pacientes
# =========================
CAMPOS_PACIENTE = (
    "full_name",
    "email",
    "phone",
    "cpf",
    "birth_date",
    "gender",
    "address",
    "emergency_contact",
    "medical_history",
    "treatment_type",
    "insurance",
    "notes",
    "session_value",
    "is_minor",
)


def _limpar_paciente(dados: dict[str, Any]) -> dict[str, Any]:
    out = dict(dados)
    if "full_name" in out and out["full_name"]:
        out["full_name"] = out["full_name"].strip()
    if "phone" in out:
        out["phone"] = normalize_phone(out["phone"])
    if out.get("cpf"):
        if not validate_cpf(out["cpf"]):
            raise ErroDominio("CPF inválido.")
        out["cpf"] = normalize_cpf(out["cpf"])
    elif "cpf" in out:
        out["cpf"] = None
    if out.get("email"):
        if not validate_email(out["email"]):
            raise ErroDominio("E-mail inválido.")
        out["email"] = out["email"].strip().lower()
    if "gender" in out:
        out["gender"] = _enum(Genero, out["gender"], "Gênero")
    if "session_value" in out:
        out["session_value"] = para_decimal(out["session_value"], "valor da sessão")
    return out


def criar_paciente(clinic_id: str, full_name: str, phone: str, **extra: Any) -> str:
    dados = _limpar_paciente({"full_name": full_name, "phone": phone, **extra})
    require_fields(dados, {"full_name": "nome completo", "phone": "telefone"})
    with db_session() as s:
        p = Paciente(clinic_id=clinic_id)
        _aplicar(p, dados, CAMPOS_PACIENTE)
        s.add(p)
        s.flush()
        log.info("Paciente %s criado (clínica=%s)", p.id, clinic_id)
        return p.id


def atualizar_paciente(clinic_id: str, paciente_id: str, **dados: Any) -> dict:
    dados = _limpar_paciente(dados)
    require_fields({k: dados[k] for k in ("full_name", "phone") if k in dados},
                   {k: r for k, r in (("full_name", "nome completo"), ("phone", "telefone")) if k in dados})
    with db_session() as s:
        p = do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente")
        _aplicar(p, dados, CAMPOS_PACIENTE)
        s.flush()
        return p.para_dict()


def _definir_ativo(model: type, rotulo: str, clinic_id: str, obj_id: str, ativo: bool) -> None:
    with db_session() as s:
        do_tenant(s, model, clinic_id, obj_id, rotulo).is_active = ativo


def desativar_paciente(clinic_id: str, paciente_id: str) -> None:
    _definir_ativo(Paciente, "Paciente", clinic_id, paciente_id, False)


def reativar_paciente(clinic_id: str, paciente_id: str) -> None:
    _definir_ativo(Paciente, "Paciente", clinic_id, paciente_id, True)


def obter_paciente(clinic_id: str, paciente_id: str) -> dict:
    with db_session() as s:
        return do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente").para_dict()


def listar_pacientes(clinic_id: str, busca: str | None = None, ativos: bool | None = True) -> list[dict]:
    """`busca` casa com nome, CPF ou telefone; `ativos=None` traz todos."""
    with db_session() as s:
        q = select(Paciente).where(Paciente.clinic_id == clinic_id)
        if ativos is not None:
            q = q.where(Paciente.is_active.is_(ativos))
        if busca and busca.strip():
            termo = busca.strip()
            filtros = [Paciente.full_name.ilike(f"%{termo}%")]
            digitos = normalize_cpf(termo)
            if digitos:
                filtros += [Paciente.cpf.contains(digitos), Paciente.phone.contains(digitos)]
            q = q.where(or_(*filtros))
        return [p.para_dict() for p in s.scalars(q.order_by(Paciente.full_name))]


# =========================
# Profissionais
# =========================
CAMPOS_PROFISSIONAL = ("name", "email", "phone", "crefito", "specialties", "bio")


def criar_profissional(clinic_id: str, name: str, **extra: Any) -> str:
    require_fields({"name": name}, {"name": "nome"})
    if extra.get("email") and not validate_email(extra["email"]):
        raise ErroDominio("E-mail inválido.")
    if extra.get("phone"):
        extra["phone"] = normalize_phone(extra["phone"])
    with db_session() as s:
        p = Profissional(clinic_id=clinic_id)
        _aplicar(p, {"name": name.strip(), **extra}, CAMPOS_PROFISSIONAL)
        s.add(p)
        s.flush()
        return p.id


def atualizar_profissional(clinic_id: str, profissional_id: str, **dados: Any) -> dict:
    if "name" in dados:
        require_fields(dados, {"name": "nome"})
    if dados.get("phone"):
        dados["phone"] = normalize_phone(dados["phone"])
    with db_session() as s:
        p = do_tenant(s, Profissional, clinic_id, profissional_id, "Profissional")
        _aplicar(p, dados, CAMPOS_PROFISSIONAL)
        s.flush()
        return p.para_dict()


def desativar_profissional(clinic_id: str, profissional_id: str) -> None:
    _definir_ativo(Profissional, "Profissional", clinic_id, profissional_id, False)


def listar_profissionais(clinic_id: str, apenas_ativos: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(Profissional).where(Profissional.clinic_id == clinic_id)
        if apenas_ativos:
            q = q.where(Profissional.is_active.is_(True))
        return [p.para_dict() for p in s.scalars(q.order_by(Profissional.name))]


def vincular_usuario(clinic_id: str, profissional_id: str, usuario_id: str | None) -> None:
    """Associa o profissional ao login de um usuário da mesma clínica (None desfaz)."""
    with db_session() as s:
        p = do_tenant(s, Profissional, clinic_id, profissional_id, "Profissional")
        if usuario_id is not None:
            do_tenant(s, Usuario, clinic_id, usuario_id, "Usuário")
        p.usuario_id = usuario_id


# =========================
# Salas
# =========================
CAMPOS_SALA = ("name", "capacity", "equipment")


def criar_sala(clinic_id: str, name: str, capacity: int = 1, equipment: list[str] | None = None) -> str:
    require_fields({"name": name}, {"name": "nome"})
    if capacity < 1:
        raise ErroDominio("A capacidade deve ser de pelo menos 1.")
    with db_session() as s:
        sala = Sala(clinic_id=clinic_id, name=name.strip(), capacity=capacity, equipment=equipment or [])
        s.add(sala)
        s.flush()
        return sala.id


def atualizar_sala(clinic_id: str, sala_id: str, **dados: Any) -> dict:
    if dados.get("capacity") is not None and dados["capacity"] < 1:
        raise ErroDominio("A capacidade deve ser de pelo menos 1.")
    with db_session() as s:
        sala = do_tenant(s, Sala, clinic_id, sala_id, "Sala")
        _aplicar(sala, dados, CAMPOS_SALA)
        s.flush()
        return sala.para_dict()


def desativar_sala(clinic_id: str, sala_id: str) -> None:
    _definir_ativo(Sala, "Sala", clinic_id, sala_id, False)


def listar_salas(clinic_id: str, apenas_ativas: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(Sala).where(Sala.clinic_id == clinic_id)
        if apenas_ativas:
            q = q.where(Sala.is_active.is_(True))
        return [r.para_dict() for r in s.scalars(q.order_by(Sala.name))]


# =========================
# Configurações da clínica
# =========================
CAMPOS_CONFIG = ("work_start", "work_end", "lunch_start", "lunch_end", "consultation_price", "timezone")


def _config(s: Session, clinic_id: str) -> ConfiguracaoClinica:
    cfg = s.execute(
        select(ConfiguracaoClinica).where(ConfiguracaoClinica.clinic_id == clinic_id)
    ).scalar_one_or_none()
    if cfg is None:
        if s.get(Clinica, clinic_id) is None:
            raise RegistroNaoEncontrado("Clínica não encontrada.")
        cfg = ConfiguracaoClinica(clinic_id=clinic_id)
        s.add(cfg)
        s.flush()
    return cfg


def obter_configuracoes(clinic_id: str) -> dict:
    with db_session() as s:
        return _config(s, clinic_id).para_dict()


def atualizar_configuracoes(clinic_id: str, **dados: Any) -> dict:
    if "consultation_price" in dados:
        dados["consultation_price"] = para_decimal(dados["consultation_price"], "valor da consulta")
    with db_session() as s:
        cfg = _config(s, clinic_id)
        _aplicar(cfg, dados, CAMPOS_CONFIG)

        if cfg.work_start >= cfg.work_end:
            raise ErroDominio("O horário de abertura deve ser anterior ao de fechamento.")
        if (cfg.lunch_start is None) != (cfg.lunch_end is None):
            raise ErroDominio("Informe início e fim do almoço.")
        if cfg.lunch_start is not None:
            if not (cfg.work_start <= cfg.lunch_start < cfg.lunch_end <= cfg.work_end):
                raise ErroDominio("O intervalo de almoço deve estar dentro do expediente.")
        s.flush()
        return cfg.para_dict()


def horario_funcionamento(clinic_id: str) -> tuple[time, time, time | None, time | None]:
    with db_session() as s:
        cfg = _config(s, clinic_id)
        return cfg.work_start, cfg.work_end, cfg.lunch_start, cfg.lunch_end


# =========================
# Prontuário e evoluções
# =========================
CAMPOS_ANAMNESE = (
    "chief_complaint",
    "history_of_present_illness",
    "past_medical_history",
    "medications",
    "allergies",
    "social_history",
)
CAMPOS_EVOLUCAO = (
    "date",
    "observations",
    "pain_scale",
    "mobility_scale",
    "treatment_performed",
    "next_session",
    "files",
    "visible_to_guardian",
)


def _prontuario(s: Session, clinic_id: str, paciente_id: str) -> Prontuario:
    do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente")
    pr = s.execute(select(Prontuario).where(Prontuario.patient_id == paciente_id)).scalar_one_or_none()
    if pr is None:
        pr = Prontuario(clinic_id=clinic_id, patient_id=paciente_id, anamnesis={}, files=[])
        s.add(pr)
        s.flush()
    return pr


def obter_ou_criar_prontuario(clinic_id: str, paciente_id: str) -> dict:
    with db_session() as s:
        return _prontuario(s, clinic_id, paciente_id).para_dict()


def atualizar_anamnese(clinic_id: str, paciente_id: str, anamnese: dict[str, Any]) -> dict:
    desconhecidos = set(anamnese) - set(CAMPOS_ANAMNESE)
    if desconhecidos:
        raise ErroDominio("Campos de anamnese desconhecidos: " + ", ".join(sorted(desconhecidos)))
    with db_session() as s:
        pr = _prontuario(s, clinic_id, paciente_id)
        # JSON: reatribuir para o SQLAlchemy detectar a mudança
        pr.anamnesis = {**(pr.anamnesis or {}), **anamnese}
        s.flush()
        return pr.para_dict()


def _validar_escala(valor: int | None, rotulo: str) -> None:
    if valor is not None and not 0 <= valor <= 10:
        raise ErroDominio(f"A escala de {rotulo} deve estar entre 0 e 10.")


def adicionar_evolucao(
    clinic_id: str,
    paciente_id: str,
    profissional_id: str,
    observations: str,
    treatment_performed: str,
    data: date | None = None,
    pain_scale: int | None = None,
    mobility_scale: int | None = None,
    next_session: str | None = None,
    visible_to_guardian: bool = False,
) -> str:
    require_fields(
        {"observations": observations, "treatment_performed": treatment_performed},
        {"observations": "observações", "treatment_performed": "tratamento realizado"},
    )
    _validar_escala(pain_scale, "dor")
    _validar_escala(mobility_scale, "mobilidade")
    with db_session() as s:
        pr = _prontuario(s, clinic_id, paciente_id)
        do_tenant(s, Profissional, clinic_id, profissional_id, "Profissional")
        ev = Evolucao(
            record_id=pr.id,
            professional_id=profissional_id,
            date=data or date.today(),
            observations=observations.strip(),
            treatment_performed=treatment_performed.strip(),
            pain_scale=pain_scale,
            mobility_scale=mobility_scale,
            next_session=next_session,
            files=[],
            visible_to_guardian=visible_to_guardian,
        )
        s.add(ev)
        s.flush()
        return ev.id


def _evolucao(s: Session, clinic_id: str, evolucao_id: str) -> Evolucao:
    ev = s.get(Evolucao, evolucao_id)
    if ev is None or ev.prontuario.clinic_id != clinic_id:
        raise RegistroNaoEncontrado("Evolução não encontrada.")
    return ev


def atualizar_evolucao(clinic_id: str, evolucao_id: str, **dados: Any) -> dict:
    _validar_escala(dados.get("pain_scale"), "dor")
    _validar_escala(dados.get("mobility_scale"), "mobilidade")
    obrigatorios = {k: r for k, r in (("observations", "observações"),
                                      ("treatment_performed", "tratamento realizado")) if k in dados}
    require_fields(dados, obrigatorios)
    with db_session() as s:
        ev = _evolucao(s, clinic_id, evolucao_id)
        _aplicar(ev, dados, CAMPOS_EVOLUCAO)
        s.flush()
        return ev.para_dict()


def excluir_evolucao(clinic_id: str, evolucao_id: str) -> None:
    with db_session() as s:
        s.delete(_evolucao(s, clinic_id, evolucao_id))


def listar_evolucoes(clinic_id: str, paciente_id: str, apenas_visiveis_responsavel: bool = False) -> list[dict]:
    """Mais recentes primeiro, com o nome do profissional."""
    with db_session() as s:
        pr = _prontuario(s, clinic_id, paciente_id)
        q = (
            select(Evolucao, Profissional.name)
            .join(Profissional, Profissional.id == Evolucao.professional_id)
            .where(Evolucao.record_id == pr.id)
            .order_by(Evolucao.date.desc(), Evolucao.created_at.desc())
        )
        if apenas_visiveis_responsavel:
            q = q.where(Evolucao.visible_to_guardian.is_(True))
        out = []
        for ev, nome in s.execute(q).all():
            d = ev.para_dict()
            d["professional_name"] = nome
            out.append(d)
        return out


# =========================
# CRM (leads)
# =========================
CAMPOS_LEAD = (
    "name",
    "email",
    "phone",
    "source",
    "status",
    "treatment_interest",
    "notes",
    "last_contact",
    "next_follow_up",
)


def _limpar_lead(dados: dict[str, Any]) -> dict[str, Any]:
    out = dict(dados)
    if "phone" in out:
        out["phone"] = normalize_phone(out["phone"])
    if out.get("email") and not validate_email(out["email"]):
        raise ErroDominio("E-mail inválido.")
    if "source" in out:
        out["source"] = _enum(OrigemLead, out["source"], "Origem") or OrigemLead.OUTROS
    if "status" in out:
        out["status"] = _enum(StatusLead, out["status"], "Status") or StatusLead.NOVO
    return out


def criar_lead(clinic_id: str, name: str, phone: str, **extra: Any) -> str:
    dados = _limpar_lead({"name": (name or "").strip(), "phone": phone, **extra})
    require_fields(dados, {"name": "nome", "phone": "telefone"})
    with db_session() as s:
        lead = Lead(clinic_id=clinic_id)
        _aplicar(lead, dados, CAMPOS_LEAD)
        s.add(lead)
        s.flush()
        return lead.id


def atualizar_lead(clinic_id: str, lead_id: str, **dados: Any) -> dict:
    dados = _limpar_lead(dados)
    with db_session() as s:
        lead = do_tenant(s, Lead, clinic_id, lead_id, "Lead")
        _aplicar(lead, dados, CAMPOS_LEAD)
        s.flush()
        return lead.para_dict()


def excluir_lead(clinic_id: str, lead_id: str) -> None:
    with db_session() as s:
        s.delete(do_tenant(s, Lead, clinic_id, lead_id, "Lead"))


def listar_leads(clinic_id: str, status: StatusLead | str | None = None) -> list[dict]:
    with db_session() as s:
        q = select(Lead).where(Lead.clinic_id == clinic_id)
        if status is not None:
            q = q.where(Lead.status == _enum(StatusLead, status, "Status"))
        return [lead.para_dict() for lead in s.scalars(q.order_by(Lead.created_at.desc()))]


def leads_por_status(clinic_id: str) -> dict[str, list[dict]]:
    """Colunas do kanban na ordem do funil."""
    colunas: dict[str, list[dict]] = {st.value: [] for st in StatusLead}
    for lead in listar_leads(clinic_id):
        colunas[lead["status"]].append(lead)
    return colunas


def converter_lead(clinic_id: str, lead_id: str) -> str:
    """Cria o paciente a partir do lead e devolve o id."""
    with db_session() as s:
        lead = do_tenant(s, Lead, clinic_id, lead_id, "Lead")
        if lead.patient_id:
            raise ErroDominio("Lead já convertido em paciente.")
        p = Paciente(
            clinic_id=clinic_id,
            full_name=lead.name,
            phone=lead.phone,
            email=lead.email,
            treatment_type=lead.treatment_interest,
            notes=lead.notes,
        )
        s.add(p)
        s.flush()
        lead.patient_id = p.id
        lead.status = StatusLead.CLIENTE
        lead.last_contact = date.today()
        log.info("Lead %s convertido no paciente %s", lead.id, p.id)
        return p.id


# =========================
# Pacotes de sessões
# =========================
CAMPOS_PACOTE = ("name", "description", "sessions", "price", "validity_days", "treatment_type")


def _validar_pacote(dados: dict[str, Any]) -> dict[str, Any]:
    out = dict(dados)
    if "price" in out:
        out["price"] = para_decimal(out["price"], "preço")
        if out["price"] is None or out["price"] <= 0:
            raise ErroDominio("O preço do pacote deve ser maior que zero.")
    if "sessions" in out and (out["sessions"] is None or out["sessions"] < 1):
        raise ErroDominio("O pacote deve ter pelo menos 1 sessão.")
    if "validity_days" in out and (out["validity_days"] is None or out["validity_days"] < 1):
        raise ErroDominio("A validade deve ser de pelo menos 1 dia.")
    return out


def criar_pacote(clinic_id: str, name: str, sessions: int, price: Any, validity_days: int = 90, **extra: Any) -> str:
    require_fields({"name": name}, {"name": "nome"})
    dados = _validar_pacote(
        {"name": name.strip(), "sessions": sessions, "price": price, "validity_days": validity_days, **extra}
    )
    with db_session() as s:
        pct = PacoteSessoes(clinic_id=clinic_id)
        _aplicar(pct, dados, CAMPOS_PACOTE)
        s.add(pct)
        s.flush()
        return pct.id


def atualizar_pacote(clinic_id: str, pacote_id: str, **dados: Any) -> dict:
    dados = _validar_pacote(dados)
    with db_session() as s:
        pct = do_tenant(s, PacoteSessoes, clinic_id, pacote_id, "Pacote")
        _aplicar(pct, dados, CAMPOS_PACOTE)
        s.flush()
        return pct.para_dict()


def desativar_pacote(clinic_id: str, pacote_id: str) -> None:
    _definir_ativo(PacoteSessoes, "Pacote", clinic_id, pacote_id, False)


def listar_pacotes(clinic_id: str, apenas_ativos: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(PacoteSessoes).where(PacoteSessoes.clinic_id == clinic_id)
        if apenas_ativos:
            q = q.where(PacoteSessoes.is_active.is_(True))
        return [p.para_dict() for p in s.scalars(q.order_by(PacoteSessoes.name))]


def vender_pacote(
    clinic_id: str,
    paciente_id: str,
    pacote_id: str,
    data_compra: date | None = None,
    metodo: MetodoPagamento | str | None = None,
) -> str:
    """
    Vende um pacote ao paciente:
    - cria o PacotePaciente com validade a partir da compra
    - lança a conta a receber do valor do pacote
    """
    data_compra = data_compra or date.today()
    with db_session() as s:
        paciente = do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente")
        pct = do_tenant(s, PacoteSessoes, clinic_id, pacote_id, "Pacote")
        if not pct.is_active:
            raise ErroDominio("Pacote inativo.")

        pp = PacotePaciente(
            clinic_id=clinic_id,
            patient_id=paciente.id,
            package_id=pct.id,
            purchase_date=data_compra,
            expiry_date=data_compra + timedelta(days=pct.validity_days),
            sessions_total=pct.sessions,
            sessions_used=0,
            status=StatusPacotePaciente.ATIVO,
        )
        s.add(pp)
        s.flush()

        s.add(
            ContaReceber(
                clinic_id=clinic_id,
                description=f"Pacote {pct.name} - {paciente.full_name}",
                amount=pct.price,
                due_date=data_compra,
                status=StatusConta.PENDENTE,
                method=_enum(MetodoPagamento, metodo, "Método de pagamento"),
                patient_id=paciente.id,
                patient_package_id=pp.id,
            )
        )
        log.info("Pacote %s vendido ao paciente %s (%s)", pct.id, paciente.id, pp.id)
        return pp.id


def consumir_sessao_em(s: Session, pp: PacotePaciente, hoje: date | None = None) -> int:
    """Consome uma sessão dentro de uma sessão aberta; devolve as restantes."""
    hoje = hoje or date.today()
    if pp.status == StatusPacotePaciente.ATIVO and pp.expiry_date < hoje:
        pp.status = StatusPacotePaciente.EXPIRADO
        s.flush()
    if pp.status == StatusPacotePaciente.EXPIRADO:
        raise PacoteIndisponivel("Pacote expirado.")
    if pp.status == StatusPacotePaciente.USADO or pp.sessions_used >= pp.sessions_total:
        raise PacoteIndisponivel("Todas as sessões do pacote já foram utilizadas.")

    pp.sessions_used += 1
    if pp.sessions_used >= pp.sessions_total:
        pp.status = StatusPacotePaciente.USADO
    return pp.sessions_total - pp.sessions_used


def consumir_sessao(clinic_id: str, pacote_paciente_id: str, hoje: date | None = None) -> int:
    with db_session() as s:
        pp = do_tenant(s, PacotePaciente, clinic_id, pacote_paciente_id, "Pacote do paciente")
        try:
            return consumir_sessao_em(s, pp, hoje)
        except PacoteIndisponivel:
            # grava a marcação de expirado antes de propagar
            s.commit()
            raise


def sessoes_restantes(clinic_id: str, pacote_paciente_id: str) -> int:
    with db_session() as s:
        pp = do_tenant(s, PacotePaciente, clinic_id, pacote_paciente_id, "Pacote do paciente")
        return max(0, pp.sessions_total - pp.sessions_used)


def listar_pacotes_paciente(clinic_id: str, paciente_id: str) -> list[dict]:
    with db_session() as s:
        do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente")
        q = (
            select(PacotePaciente, PacoteSessoes.name)
            .join(PacoteSessoes, PacoteSessoes.id == PacotePaciente.package_id)
            .where(PacotePaciente.patient_id == paciente_id)
            .order_by(PacotePaciente.purchase_date.desc())
        )
        out = []
        for pp, nome in s.execute(q).all():
            d = pp.para_dict()
            d["package_name"] = nome
            d["sessions_remaining"] = max(0, pp.sessions_total - pp.sessions_used)
            out.append(d)
        return out
