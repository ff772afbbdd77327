from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select

from .auth_models import Usuario
from .db import db_session
from .financeiro import resumo_financeiro
from .models import Agendamento, Clinica, Lead, Paciente, StatusAgendamento, StatusLead


def estatisticas_dashboard(clinic_id: str, hoje: date | None = None) -> dict[str, Any]:
    """Indicadores da tela inicial; janelas de 7 e 30 dias incluem hoje."""
    hoje = hoje or date.today()
    ini_7 = hoje - timedelta(days=6)
    ini_30 = hoje - timedelta(days=29)

    with db_session() as s:
        def conta_agendamentos(inicio: date, *filtros) -> int:
            q = select(func.count(Agendamento.id)).where(
                Agendamento.clinic_id == clinic_id,
                Agendamento.date >= inicio,
                Agendamento.date <= hoje,
                Agendamento.status != StatusAgendamento.CANCELADO,
                *filtros,
            )
            return s.scalar(q) or 0

        def conta_pacientes(ativo: bool) -> int:
            q = select(func.count(Paciente.id)).where(Paciente.clinic_id == clinic_id, Paciente.is_active.is_(ativo))
            return s.scalar(q) or 0

        leads = s.execute(
            select(Lead.status, func.count(Lead.id)).where(Lead.clinic_id == clinic_id).group_by(Lead.status)
        ).all()
        por_status = {st: n for st, n in leads}

        out: dict[str, Any] = {
            "agendamentos_hoje": conta_agendamentos(hoje),
            "agendamentos_7_dias": conta_agendamentos(ini_7),
            "agendamentos_30_dias": conta_agendamentos(ini_30),
            "faltas_30_dias": conta_agendamentos(ini_30, Agendamento.status == StatusAgendamento.FALTANTE),
            "pacientes_ativos": conta_pacientes(True),
            "pacientes_inativos": conta_pacientes(False),
            "leads_novos": por_status.get(StatusLead.NOVO, 0),
            "leads_convertidos": por_status.get(StatusLead.CLIENTE, 0),
            "leads_total": sum(por_status.values()),
        }

    resumo = resumo_financeiro(clinic_id, hoje)
    out.update(
        {
            "receita_total": resumo["total_recebido"],
            "receita_pendente": resumo["a_receber"],
            "contas_pagar_abertas": resumo["a_pagar"],
            "contas_receber_abertas": resumo["a_receber"],
            "saldo": resumo["saldo"],
        }
    )
    return out


def estatisticas_globais() -> dict[str, Any]:
    """Painel do super: totais do sistema e contagens por clínica."""
    with db_session() as s:
        usuarios = dict(
            s.execute(select(Usuario.clinic_id, func.count(Usuario.id)).group_by(Usuario.clinic_id)).all()
        )
        pacientes = dict(
            s.execute(select(Paciente.clinic_id, func.count(Paciente.id)).group_by(Paciente.clinic_id)).all()
        )
        clinicas = []
        for c in s.scalars(select(Clinica).order_by(Clinica.created_at.desc())):
            d = c.para_dict()
            d["users_count"] = usuarios.get(c.id, 0)
            d["patients_count"] = pacientes.get(c.id, 0)
            clinicas.append(d)

    return {
        "total_clinicas": len(clinicas),
        "clinicas_ativas": sum(1 for c in clinicas if c["is_active"]),
        "total_usuarios": sum(usuarios.values()),
        "total_pacientes": sum(pacientes.values()),
        "clinicas": clinicas,
    }
