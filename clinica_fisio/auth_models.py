from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from clinica_fisio.db import Base
from clinica_fisio.models import Papel, ParaDict, new_uuid, valores_enum


class Usuario(ParaDict, Base):
    """
    Usuário da aplicação.
    - username único (o e-mail, em minúsculas)
    - password_hash com bcrypt (passlib)
    - clinic_id nulo apenas para o papel super
    """
    __tablename__ = "usuarios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    username: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    role: Mapped[Papel] = mapped_column(valores_enum(Papel), default=Papel.RECEPTIONIST, nullable=False)
    clinic_id: Mapped[str | None] = mapped_column(ForeignKey("clinicas.id"), nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def para_dict(self) -> dict:
        out = super().para_dict()
        out.pop("password_hash", None)
        return out
