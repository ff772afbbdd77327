"""
Agenda da clínica: slots de 30 minutos, disponibilidade, agendamentos
avulsos e recorrentes, mudança de status e visões de dia/semana.

Dias da semana seguem o formulário de agendamento: 0 = domingo ... 6 = sábado,
com semanas começando no domingo.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from .db import db_session
from .errors import ConflitoHorario, ErroDominio, RegistroNaoEncontrado
from .formatters import format_date_br, minutes_to_time, slots_para_duracao
from .models import (
    Agendamento,
    ConfiguracaoClinica,
    ContaReceber,
    PacotePaciente,
    Paciente,
    Profissional,
    Sala,
    StatusAgendamento,
    StatusConta,
)
from .services import consumir_sessao_em, do_tenant, para_decimal

log = logging.getLogger(__name__)

SLOT_MINUTOS = 30
TIME_SLOTS = [minutes_to_time(m) for m in range(7 * 60, 19 * 60 + 31, SLOT_MINUTOS)]

DURATION_OPTIONS = [
    (30, "30 minutos"),
    (45, "45 minutos"),
    (60, "1 hora"),
    (90, "1h 30min"),
    (120, "2 horas"),
]

DIAS_SEMANA = ["Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado"]

STATUS_LABELS = {
    StatusAgendamento.MARCADO: "Marcado",
    StatusAgendamento.CONFIRMADO: "Confirmado",
    StatusAgendamento.REALIZADO: "Realizado",
    StatusAgendamento.FALTANTE: "Faltante",
    StatusAgendamento.CANCELADO: "Cancelado",
}

CAMPOS_AGENDAMENTO = (
    "patient_id",
    "professional_id",
    "room_id",
    "date",
    "time",
    "duration",
    "treatment_type",
    "price",
    "notes",
    "pacote_paciente_id",
)


@dataclass(frozen=True)
class Intervalo:
    id: str | None
    inicio: datetime
    fim: datetime


# =========================
# Regras puras
# =========================
def calcular_slots_duracao(duracao: int) -> int:
    return slots_para_duracao(duracao, SLOT_MINUTOS)


def has_time_conflict(
    inicio: datetime,
    fim: datetime,
    existentes: Iterable[Intervalo],
    exclude_id: str | None = None,
) -> bool:
    """Sobreposição [inicio, fim) contra cada intervalo existente."""
    for ex in existentes:
        if exclude_id and ex.id == exclude_id:
            continue
        if inicio < ex.fim and fim > ex.inicio:
            return True
    return False


def dia_semana(d: date) -> int:
    """0 = domingo."""
    return d.isoweekday() % 7


def inicio_semana(d: date) -> date:
    return d - timedelta(days=dia_semana(d))


def gerar_datas_recorrentes(inicio: date, dias_semana: Iterable[int], semanas: int) -> list[date]:
    """
    Para cada semana w em 0..semanas-1 pega a semana (domingo a sábado) de
    `inicio + w semanas` e inclui cada dia selecionado. Na primeira semana
    podem sair datas anteriores a `inicio`; o total é sempre
    semanas x dias distintos.
    """
    dias = sorted(set(dias_semana))
    if any(d < 0 or d > 6 for d in dias):
        raise ErroDominio("Dia da semana inválido (0 = domingo ... 6 = sábado).")
    datas = []
    for w in range(semanas):
        base = inicio_semana(inicio + timedelta(weeks=w))
        for d in dias:
            datas.append(base + timedelta(days=d))
    return sorted(datas)


def _hora(valor: time | str) -> time:
    if isinstance(valor, time):
        return valor
    try:
        return time.fromisoformat(valor)
    except (TypeError, ValueError):
        raise ErroDominio(f"Horário inválido: {valor}") from None


def _status(valor: StatusAgendamento | str) -> StatusAgendamento:
    try:
        return StatusAgendamento(valor)
    except ValueError:
        raise ErroDominio(f"Status inválido: {valor}") from None


def _intervalo(ag: Agendamento) -> Intervalo:
    return Intervalo(ag.id, ag.inicio, ag.inicio + timedelta(minutes=ag.duration))


# =========================
# Disponibilidade
# =========================
def _ocupados(
    s: Session,
    clinic_id: str,
    dia: date,
    profissional_id: str | None = None,
    sala_id: str | None = None,
) -> list[Intervalo]:
    q = select(Agendamento).where(
        and_(
            Agendamento.clinic_id == clinic_id,
            Agendamento.date == dia,
            Agendamento.status != StatusAgendamento.CANCELADO,
        )
    )
    if profissional_id and sala_id:
        q = q.where((Agendamento.professional_id == profissional_id) | (Agendamento.room_id == sala_id))
    elif profissional_id:
        q = q.where(Agendamento.professional_id == profissional_id)
    elif sala_id:
        q = q.where(Agendamento.room_id == sala_id)
    return [_intervalo(ag) for ag in s.scalars(q)]


def horarios_disponiveis(
    clinic_id: str,
    dia: date,
    duracao: int,
    profissional_id: str | None = None,
    exclude_id: str | None = None,
) -> list[str]:
    """
    Inícios de slot dentro do expediente (`work_end` é o último início
    aceito) que cabem na grade, fora do almoço e sem sobreposição com a agenda.
    """
    necessarios = calcular_slots_duracao(duracao)
    with db_session() as s:
        cfg = s.execute(
            select(ConfiguracaoClinica).where(ConfiguracaoClinica.clinic_id == clinic_id)
        ).scalar_one_or_none()
        abre = cfg.work_start if cfg else time(7, 0)
        fecha = cfg.work_end if cfg else time(19, 30)
        almoco = (cfg.lunch_start, cfg.lunch_end) if cfg and cfg.lunch_start and cfg.lunch_end else None
        ocupados = _ocupados(s, clinic_id, dia, profissional_id)

    livres = []
    for i, slot in enumerate(TIME_SLOTS):
        h = _hora(slot)
        if h < abre or h > fecha:
            continue
        if i + necessarios > len(TIME_SLOTS):
            continue
        ini = datetime.combine(dia, h)
        fim = ini + timedelta(minutes=duracao)
        if almoco:
            pausa = Intervalo(None, datetime.combine(dia, almoco[0]), datetime.combine(dia, almoco[1]))
            if has_time_conflict(ini, fim, [pausa]):
                continue
        if not has_time_conflict(ini, fim, ocupados, exclude_id=exclude_id):
            livres.append(slot)
    return livres


def _checar_conflito(s: Session, ag: Agendamento) -> None:
    existentes = _ocupados(s, ag.clinic_id, ag.date, ag.professional_id, ag.room_id)
    iv = _intervalo(ag)
    if has_time_conflict(iv.inicio, iv.fim, existentes, exclude_id=ag.id):
        raise ConflitoHorario(
            f"Horário {ag.time.strftime('%H:%M')} de {format_date_br(ag.date)} já ocupado "
            "para o profissional ou a sala."
        )


# =========================
# Criação
# =========================
def _preco(s: Session, clinic_id: str, paciente: Paciente, treatment_type: str, price: Any) -> Decimal:
    valor = para_decimal(price, "valor")
    if valor is None and treatment_type == "consulta":
        cfg = s.execute(
            select(ConfiguracaoClinica).where(ConfiguracaoClinica.clinic_id == clinic_id)
        ).scalar_one_or_none()
        valor = cfg.consultation_price if cfg else None
    if valor is None:
        valor = paciente.session_value
    if valor is None or valor <= 0:
        raise ErroDominio("Informe um valor maior que zero para o agendamento.")
    return valor


def _validar_vinculos(s: Session, clinic_id: str, ag: Agendamento) -> Paciente:
    paciente = do_tenant(s, Paciente, clinic_id, ag.patient_id, "Paciente")
    do_tenant(s, Profissional, clinic_id, ag.professional_id, "Profissional")
    if ag.room_id:
        do_tenant(s, Sala, clinic_id, ag.room_id, "Sala")
    if ag.pacote_paciente_id:
        pp = do_tenant(s, PacotePaciente, clinic_id, ag.pacote_paciente_id, "Pacote do paciente")
        if pp.patient_id != ag.patient_id:
            raise ErroDominio("O pacote informado pertence a outro paciente.")
    if not ag.duration or ag.duration <= 0:
        raise ErroDominio("A duração deve ser maior que zero.")
    return paciente


def _cobranca(s: Session, ag: Agendamento, paciente: Paciente) -> None:
    s.add(
        ContaReceber(
            clinic_id=ag.clinic_id,
            description=f"{ag.treatment_type.capitalize()} - {paciente.full_name} - {format_date_br(ag.date)}",
            amount=ag.price,
            due_date=ag.date,
            status=StatusConta.PENDENTE,
            patient_id=ag.patient_id,
            professional_id=ag.professional_id,
            appointment_id=ag.id,
        )
    )


def _inserir(
    s: Session,
    clinic_id: str,
    patient_id: str,
    professional_id: str,
    data: date,
    hora: time,
    duration: int,
    treatment_type: str,
    price: Any,
    room_id: str | None,
    notes: str | None,
    status: StatusAgendamento,
    pacote_paciente_id: str | None,
    recorrencia_id: str | None,
    verificar_conflito: bool,
    gerar_cobranca: bool,
) -> Agendamento:
    ag = Agendamento(
        clinic_id=clinic_id,
        patient_id=patient_id,
        professional_id=professional_id,
        room_id=room_id or None,
        date=data,
        time=hora,
        duration=duration,
        treatment_type=treatment_type or "consulta",
        status=status,
        notes=notes,
        pacote_paciente_id=pacote_paciente_id or None,
        recorrencia_id=recorrencia_id,
    )
    paciente = _validar_vinculos(s, clinic_id, ag)
    ag.price = _preco(s, clinic_id, paciente, ag.treatment_type, price)
    if verificar_conflito:
        _checar_conflito(s, ag)
    s.add(ag)
    s.flush()
    if gerar_cobranca:
        _cobranca(s, ag, paciente)
    return ag


def criar_agendamento(
    clinic_id: str,
    patient_id: str,
    professional_id: str,
    data: date,
    hora: time | str,
    duration: int = 45,
    treatment_type: str = "consulta",
    price: Any = None,
    room_id: str | None = None,
    notes: str | None = None,
    status: StatusAgendamento | str = StatusAgendamento.MARCADO,
    pacote_paciente_id: str | None = None,
    verificar_conflito: bool = False,
    gerar_cobranca: bool = False,
) -> str:
    if not patient_id or not professional_id or not data or not hora:
        raise ErroDominio("Preencha paciente, profissional, data e horário.")
    with db_session() as s:
        ag = _inserir(
            s, clinic_id, patient_id, professional_id, data, _hora(hora), duration, treatment_type, price,
            room_id, notes, _status(status), pacote_paciente_id, None, verificar_conflito, gerar_cobranca,
        )
        log.info("Agendamento %s criado para %s %s", ag.id, ag.date, ag.time)
        return ag.id


def criar_agendamentos_recorrentes(
    clinic_id: str,
    patient_id: str,
    professional_id: str,
    inicio: date,
    hora: time | str,
    dias_semana: Iterable[int],
    semanas: int,
    duration: int = 45,
    treatment_type: str = "consulta",
    price: Any = None,
    room_id: str | None = None,
    notes: str | None = None,
    pacote_paciente_id: str | None = None,
    verificar_conflito: bool = False,
    gerar_cobranca: bool = False,
) -> list[str]:
    """Uma linha por data gerada, todas com o mesmo `recorrencia_id`."""
    dias_semana = list(dias_semana)
    if semanas < 1:
        raise ErroDominio("O número de semanas deve ser pelo menos 1.")
    if not dias_semana:
        raise ErroDominio("Selecione pelo menos um dia da semana.")
    if not patient_id or not professional_id or not inicio or not hora:
        raise ErroDominio("Preencha paciente, profissional, data e horário.")

    datas = gerar_datas_recorrentes(inicio, dias_semana, semanas)
    recorrencia_id = str(uuid.uuid4())
    h = _hora(hora)
    with db_session() as s:
        ids = []
        for d in datas:
            ag = _inserir(
                s, clinic_id, patient_id, professional_id, d, h, duration, treatment_type, price, room_id,
                notes, StatusAgendamento.MARCADO, pacote_paciente_id, recorrencia_id, verificar_conflito,
                gerar_cobranca,
            )
            ids.append(ag.id)
        log.info("Recorrência %s: %d agendamentos criados", recorrencia_id, len(ids))
        return ids


# =========================
# Alterações
# =========================
def atualizar_agendamento(clinic_id: str, agendamento_id: str, verificar_conflito: bool = False, **dados: Any) -> dict:
    desconhecidos = set(dados) - set(CAMPOS_AGENDAMENTO)
    if desconhecidos:
        raise ErroDominio("Campos não editáveis: " + ", ".join(sorted(desconhecidos)))
    if "time" in dados:
        dados["time"] = _hora(dados["time"])
    with db_session() as s:
        ag = do_tenant(s, Agendamento, clinic_id, agendamento_id, "Agendamento")
        for k, v in dados.items():
            setattr(ag, k, v)
        _validar_vinculos(s, clinic_id, ag)
        if "price" in dados:
            ag.price = para_decimal(dados["price"], "valor")
            if ag.price is None or ag.price <= 0:
                raise ErroDominio("Informe um valor maior que zero para o agendamento.")
        if verificar_conflito:
            _checar_conflito(s, ag)
        s.flush()
        return ag.para_dict()


def mover_agendamento(
    clinic_id: str,
    agendamento_id: str,
    nova_data: date,
    nova_hora: time | str,
    room_id: str | None = None,
    professional_id: str | None = None,
    verificar_conflito: bool = True,
) -> dict:
    """Arrastar-e-soltar na grade: nova data/hora e, opcionalmente, sala ou profissional."""
    dados: dict[str, Any] = {"date": nova_data, "time": nova_hora}
    if room_id is not None:
        dados["room_id"] = room_id or None
    if professional_id is not None:
        dados["professional_id"] = professional_id
    return atualizar_agendamento(clinic_id, agendamento_id, verificar_conflito=verificar_conflito, **dados)


def alterar_status(
    clinic_id: str,
    agendamento_id: str,
    status: StatusAgendamento | str,
    hoje: date | None = None,
) -> dict:
    """`realizado` consome uma sessão do pacote vinculado, uma única vez."""
    status = _status(status)
    with db_session() as s:
        ag = do_tenant(s, Agendamento, clinic_id, agendamento_id, "Agendamento")
        ag.status = status
        if status == StatusAgendamento.REALIZADO and ag.pacote_paciente_id and not ag.sessao_consumida:
            pp = s.get(PacotePaciente, ag.pacote_paciente_id)
            restantes = consumir_sessao_em(s, pp, hoje)
            ag.sessao_consumida = True
            log.info("Sessão consumida do pacote %s (restam %d)", pp.id, restantes)
        s.flush()
        return ag.para_dict()


def _desvincular_cobrancas(s: Session, ids: list[str]) -> None:
    if ids:
        s.execute(
            update(ContaReceber).where(ContaReceber.appointment_id.in_(ids)).values(appointment_id=None)
        )


def excluir_agendamento(clinic_id: str, agendamento_id: str) -> None:
    with db_session() as s:
        ag = do_tenant(s, Agendamento, clinic_id, agendamento_id, "Agendamento")
        _desvincular_cobrancas(s, [ag.id])
        s.delete(ag)


def excluir_recorrencia(clinic_id: str, recorrencia_id: str, a_partir_de: date | None = None) -> int:
    """Exclui a série (ou só as datas a partir de `a_partir_de`); devolve quantos saíram."""
    with db_session() as s:
        q = select(Agendamento).where(
            Agendamento.clinic_id == clinic_id, Agendamento.recorrencia_id == recorrencia_id
        )
        if a_partir_de is not None:
            q = q.where(Agendamento.date >= a_partir_de)
        rows = list(s.scalars(q))
        if not rows and a_partir_de is None:
            raise RegistroNaoEncontrado("Recorrência não encontrada.")
        _desvincular_cobrancas(s, [ag.id for ag in rows])
        for ag in rows:
            s.delete(ag)
        return len(rows)


# =========================
# Visões
# =========================
def _linhas(
    s: Session,
    clinic_id: str,
    inicio: date,
    fim: date,
    profissional_id: str | None,
    sala_id: str | None,
    status: StatusAgendamento | str | None,
) -> list[dict]:
    q = (
        select(
            Agendamento,
            Paciente.full_name.label("patient_name"),
            Profissional.name.label("professional_name"),
            Sala.name.label("room_name"),
        )
        .join(Paciente, Paciente.id == Agendamento.patient_id)
        .join(Profissional, Profissional.id == Agendamento.professional_id)
        .outerjoin(Sala, Sala.id == Agendamento.room_id)
        .where(
            and_(
                Agendamento.clinic_id == clinic_id,
                Agendamento.date >= inicio,
                Agendamento.date <= fim,
            )
        )
        .order_by(Agendamento.date.asc(), Agendamento.time.asc())
    )
    if profissional_id:
        q = q.where(Agendamento.professional_id == profissional_id)
    if sala_id:
        q = q.where(Agendamento.room_id == sala_id)
    if status:
        q = q.where(Agendamento.status == _status(status))

    out = []
    for r in s.execute(q).all():
        ag = r.Agendamento
        d = ag.para_dict()
        d.update(
            {
                "time": ag.time.strftime("%H:%M"),
                "end_time": (ag.inicio + timedelta(minutes=ag.duration)).strftime("%H:%M"),
                "patient_name": r.patient_name,
                "professional_name": r.professional_name,
                "room_name": r.room_name,
                "status_label": STATUS_LABELS[ag.status],
            }
        )
        out.append(d)
    return out


def agenda_dia(
    clinic_id: str,
    dia: date,
    profissional_id: str | None = None,
    sala_id: str | None = None,
    status: StatusAgendamento | str | None = None,
) -> list[dict]:
    with db_session() as s:
        return _linhas(s, clinic_id, dia, dia, profissional_id, sala_id, status)


def agenda_semana(
    clinic_id: str,
    dia: date,
    profissional_id: str | None = None,
    sala_id: str | None = None,
    status: StatusAgendamento | str | None = None,
) -> list[dict]:
    """Sete colunas (domingo a sábado) da semana que contém `dia`."""
    ini = inicio_semana(dia)
    fim = ini + timedelta(days=6)
    with db_session() as s:
        linhas = _linhas(s, clinic_id, ini, fim, profissional_id, sala_id, status)

    colunas = [
        {"date": ini + timedelta(days=i), "weekday": DIAS_SEMANA[i], "agendamentos": []}
        for i in range(7)
    ]
    for linha in linhas:
        colunas[(linha["date"] - ini).days]["agendamentos"].append(linha)
    return colunas
