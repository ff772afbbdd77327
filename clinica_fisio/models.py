from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


def valores_enum(enum_cls: type[enum.Enum]) -> Enum:
    # grava o valor ("pendente"), não o nome do membro
    return Enum(enum_cls, values_callable=lambda e: [m.value for m in e])


class ParaDict:
    """Versão 'flat' das linhas: dict serializável, sem lazy-load fora da sessão."""

    def para_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for col in self.__table__.columns:  # type: ignore[attr-defined]
            value = getattr(self, col.key)
            if isinstance(value, enum.Enum):
                value = value.value
            out[col.key] = value
        return out


class StatusAgendamento(enum.Enum):
    MARCADO = "marcado"
    CONFIRMADO = "confirmado"
    REALIZADO = "realizado"
    FALTANTE = "faltante"
    CANCELADO = "cancelado"


class StatusConta(enum.Enum):
    PENDENTE = "pendente"
    PAGO = "pago"
    VENCIDO = "vencido"
    CANCELADO = "cancelado"


class MetodoPagamento(enum.Enum):
    DINHEIRO = "dinheiro"
    CARTAO = "cartao"
    PIX = "pix"
    TRANSFERENCIA = "transferencia"


class StatusLead(enum.Enum):
    NOVO = "novo"
    CONTATO_INICIAL = "contato_inicial"
    AGENDAMENTO = "agendamento"
    AVALIACAO = "avaliacao"
    PROPOSTA = "proposta"
    CLIENTE = "cliente"
    PERDIDO = "perdido"


class OrigemLead(enum.Enum):
    GOOGLE_ADS = "google_ads"
    FACEBOOK_ADS = "facebook_ads"
    INSTAGRAM_ADS = "instagram_ads"
    INDICACAO = "indicacao"
    SITE = "site"
    OUTROS = "outros"


class StatusPacotePaciente(enum.Enum):
    ATIVO = "ativo"
    EXPIRADO = "expirado"
    USADO = "usado"


class StatusConvite(enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Papel(enum.Enum):
    SUPER = "super"
    ADMIN = "admin"
    PROFESSIONAL = "professional"
    RECEPTIONIST = "receptionist"
    GUARDIAN = "guardian"


class Genero(enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# =========================
# Clínica (tenant)
# =========================
class Clinica(ParaDict, Base):
    __tablename__ = "clinicas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    clinic_code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    configuracao: Mapped["ConfiguracaoClinica"] = relationship(
        back_populates="clinica", cascade="all, delete-orphan", uselist=False
    )

    def __repr__(self) -> str:
        return f"Clinica({self.name}, {self.clinic_code})"


class ConfiguracaoClinica(ParaDict, Base):
    __tablename__ = "configuracoes_clinica"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, unique=True)

    work_start: Mapped[time] = mapped_column(Time, default=time(7, 0), nullable=False)
    work_end: Mapped[time] = mapped_column(Time, default=time(19, 30), nullable=False)
    lunch_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    lunch_end: Mapped[time | None] = mapped_column(Time, nullable=True)
    consultation_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    timezone: Mapped[str] = mapped_column(String(60), default="America/Cuiaba", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    clinica: Mapped["Clinica"] = relationship(back_populates="configuracao")


# =========================
# Cadastros
# =========================
class Paciente(ParaDict, Base):
    __tablename__ = "pacientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    cpf: Mapped[str | None] = mapped_column(String(11), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[Genero | None] = mapped_column(valores_enum(Genero), nullable=True)
    address: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    emergency_contact: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    medical_history: Mapped[str | None] = mapped_column(Text, nullable=True)
    treatment_type: Mapped[str | None] = mapped_column(String(120), nullable=True)
    insurance: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_minor: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    agendamentos: Mapped[list["Agendamento"]] = relationship(back_populates="paciente")
    prontuario: Mapped["Prontuario"] = relationship(back_populates="paciente", uselist=False)

    def __repr__(self) -> str:
        return f"Paciente({self.full_name})"


class Profissional(ParaDict, Base):
    __tablename__ = "profissionais"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    crefito: Mapped[str | None] = mapped_column(String(30), nullable=True)
    specialties: Mapped[list | None] = mapped_column(JSON, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    usuario_id: Mapped[str | None] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    agendamentos: Mapped[list["Agendamento"]] = relationship(back_populates="profissional")

    def __repr__(self) -> str:
        return f"Profissional({self.name}, CREFITO {self.crefito or '-'})"


class Sala(ParaDict, Base):
    __tablename__ = "salas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    equipment: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    agendamentos: Mapped[list["Agendamento"]] = relationship(back_populates="sala")


# =========================
# Agenda
# =========================
class Agendamento(ParaDict, Base):
    __tablename__ = "agendamentos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    patient_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False)
    professional_id: Mapped[str] = mapped_column(ForeignKey("profissionais.id"), nullable=False)
    room_id: Mapped[str | None] = mapped_column(ForeignKey("salas.id"), nullable=True)

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[time] = mapped_column(Time, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=45, nullable=False)  # minutos

    treatment_type: Mapped[str] = mapped_column(String(60), default="consulta", nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[StatusAgendamento] = mapped_column(
        valores_enum(StatusAgendamento), default=StatusAgendamento.MARCADO, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # agendamentos criados juntos por recorrência compartilham o mesmo id
    recorrencia_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    pacote_paciente_id: Mapped[str | None] = mapped_column(ForeignKey("pacotes_paciente.id"), nullable=True)
    sessao_consumida: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    paciente: Mapped["Paciente"] = relationship(back_populates="agendamentos")
    profissional: Mapped["Profissional"] = relationship(back_populates="agendamentos")
    sala: Mapped["Sala"] = relationship(back_populates="agendamentos")

    @property
    def inicio(self) -> datetime:
        return datetime.combine(self.date, self.time)


# =========================
# Prontuário
# =========================
class Prontuario(ParaDict, Base):
    __tablename__ = "prontuarios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False, unique=True)

    # chief_complaint, history_of_present_illness, past_medical_history,
    # medications, allergies, social_history
    anamnesis: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    files: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    paciente: Mapped["Paciente"] = relationship(back_populates="prontuario")
    evolucoes: Mapped[list["Evolucao"]] = relationship(back_populates="prontuario", cascade="all, delete-orphan")


class Evolucao(ParaDict, Base):
    __tablename__ = "evolucoes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    record_id: Mapped[str] = mapped_column(ForeignKey("prontuarios.id"), nullable=False)
    professional_id: Mapped[str] = mapped_column(ForeignKey("profissionais.id"), nullable=False)

    date: Mapped[date] = mapped_column(Date, nullable=False)
    observations: Mapped[str] = mapped_column(Text, nullable=False)
    pain_scale: Mapped[int | None] = mapped_column(Integer, nullable=True)      # 0-10
    mobility_scale: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-10
    treatment_performed: Mapped[str] = mapped_column(Text, nullable=False)
    next_session: Mapped[str | None] = mapped_column(Text, nullable=True)
    files: Mapped[list | None] = mapped_column(JSON, nullable=True)
    visible_to_guardian: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    prontuario: Mapped["Prontuario"] = relationship(back_populates="evolucoes")


# =========================
# Financeiro
# =========================
class ContaPagar(ParaDict, Base):
    __tablename__ = "contas_pagar"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[StatusConta] = mapped_column(valores_enum(StatusConta), default=StatusConta.PENDENTE, nullable=False)
    category: Mapped[str | None] = mapped_column(String(80), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[MetodoPagamento | None] = mapped_column(valores_enum(MetodoPagamento), nullable=True)

    patient_id: Mapped[str | None] = mapped_column(ForeignKey("pacientes.id"), nullable=True)
    professional_id: Mapped[str | None] = mapped_column(ForeignKey("profissionais.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

class ContaReceber(ParaDict, Base):
    __tablename__ = "contas_receber"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[StatusConta] = mapped_column(valores_enum(StatusConta), default=StatusConta.PENDENTE, nullable=False)
    method: Mapped[MetodoPagamento | None] = mapped_column(valores_enum(MetodoPagamento), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient_id: Mapped[str | None] = mapped_column(ForeignKey("pacientes.id"), nullable=True)
    professional_id: Mapped[str | None] = mapped_column(ForeignKey("profissionais.id"), nullable=True)
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("agendamentos.id"), nullable=True)
    patient_package_id: Mapped[str | None] = mapped_column(ForeignKey("pacotes_paciente.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

# =========================
# CRM
# =========================
class Lead(ParaDict, Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[OrigemLead] = mapped_column(valores_enum(OrigemLead), default=OrigemLead.OUTROS, nullable=False)
    status: Mapped[StatusLead] = mapped_column(valores_enum(StatusLead), default=StatusLead.NOVO, nullable=False)
    treatment_interest: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_contact: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_follow_up: Mapped[date | None] = mapped_column(Date, nullable=True)
    patient_id: Mapped[str | None] = mapped_column(ForeignKey("pacientes.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


# =========================
# Pacotes de sessões
# =========================
class PacoteSessoes(ParaDict, Base):
    __tablename__ = "pacotes_sessoes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    validity_days: Mapped[int] = mapped_column(Integer, default=90, nullable=False)
    treatment_type: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class PacotePaciente(ParaDict, Base):
    __tablename__ = "pacotes_paciente"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("pacientes.id"), nullable=False)
    package_id: Mapped[str] = mapped_column(ForeignKey("pacotes_sessoes.id"), nullable=False)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    sessions_total: Mapped[int] = mapped_column(Integer, nullable=False)
    sessions_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[StatusPacotePaciente] = mapped_column(
        valores_enum(StatusPacotePaciente), default=StatusPacotePaciente.ATIVO, nullable=False
    )

    pacote: Mapped["PacoteSessoes"] = relationship()


# =========================
# Convites e permissões
# =========================
class ConviteUsuario(ParaDict, Base):
    __tablename__ = "convites_usuario"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False, index=True)

    email: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[Papel] = mapped_column(valores_enum(Papel), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[StatusConvite] = mapped_column(
        valores_enum(StatusConvite), default=StatusConvite.PENDING, nullable=False
    )
    permissions: Mapped[list | None] = mapped_column(JSON, nullable=True)
    invited_by: Mapped[str | None] = mapped_column(ForeignKey("usuarios.id"), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Permissao(ParaDict, Base):
    __tablename__ = "permissoes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    resource: Mapped[str] = mapped_column(String(40), nullable=False)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PresetPermissao(Base):
    __tablename__ = "presets_permissao"
    __table_args__ = (UniqueConstraint("role", "permission_id", name="uq_preset_role_perm"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role: Mapped[Papel] = mapped_column(valores_enum(Papel), nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissoes.id"), nullable=False)

    permissao: Mapped["Permissao"] = relationship()


class PermissaoUsuario(Base):
    __tablename__ = "permissoes_usuario"
    __table_args__ = (UniqueConstraint("user_id", "permission_id", name="uq_user_perm"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("usuarios.id"), nullable=False, index=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissoes.id"), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    permissao: Mapped["Permissao"] = relationship()
