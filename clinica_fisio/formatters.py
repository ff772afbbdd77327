"""
Normalização, formatação e validação de dados de cadastro.

Telefones e CPFs são gravados apenas com dígitos; a formatação com
máscara acontece só na exibição.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from .errors import ErroDominio
from .settings import DEFAULT_AREA_CODE

_NAO_DIGITO = re.compile(r"\D")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _digitos(valor: str | None) -> str:
    return _NAO_DIGITO.sub("", valor or "")


def normalize_phone(phone: str | None) -> str:
    """
    "(66) 99951-6222" -> "66999516222"
    "999516222"       -> "66999516222" (DDD padrão)
    "+55 66 99951-6222" -> "66999516222"
    """
    cleaned = _digitos(phone)
    if not cleaned:
        return ""
    if len(cleaned) in (8, 9):
        return DEFAULT_AREA_CODE + cleaned
    if cleaned.startswith("55") and len(cleaned) > 11:
        return cleaned[2:]
    return cleaned


def normalize_cpf(cpf: str | None) -> str:
    return _digitos(cpf)


def format_phone(phone: str | None) -> str:
    if not phone:
        return ""
    cleaned = _digitos(phone)
    if len(cleaned) == 11:
        return f"({cleaned[:2]}) {cleaned[2:7]}-{cleaned[7:]}"
    if len(cleaned) == 10:
        return f"({cleaned[:2]}) {cleaned[2:6]}-{cleaned[6:]}"
    if len(cleaned) == 9:
        return f"{cleaned[:5]}-{cleaned[5:]}"
    if len(cleaned) == 8:
        return f"{cleaned[:4]}-{cleaned[4:]}"
    return phone


def format_cpf(cpf: str | None) -> str:
    if not cpf:
        return ""
    cleaned = normalize_cpf(cpf)
    if len(cleaned) == 11:
        return f"{cleaned[:3]}.{cleaned[3:6]}.{cleaned[6:9]}-{cleaned[9:]}"
    return cpf


def _digito_verificador(numeros: str, peso_inicial: int) -> int:
    soma = sum(int(d) * (peso_inicial - i) for i, d in enumerate(numeros))
    resto = (soma * 10) % 11
    return 0 if resto == 10 else resto


def validate_cpf(cpf: str | None) -> bool:
    cleaned = normalize_cpf(cpf)
    if len(cleaned) != 11:
        return False
    if cleaned == cleaned[0] * 11:
        return False
    if _digito_verificador(cleaned[:9], 10) != int(cleaned[9]):
        return False
    return _digito_verificador(cleaned[:10], 11) == int(cleaned[10])


def validate_email(email: str | None) -> bool:
    return bool(email) and _EMAIL.match(email.strip()) is not None


def validate_phone(phone: str | None) -> bool:
    return len(normalize_phone(phone)) in (10, 11)


def format_currency(value: Decimal | float | int | str | None) -> str:
    """1234.5 -> 'R$ 1.234,50'"""
    try:
        numero = Decimal(str(value)) if value is not None else Decimal("0")
    except InvalidOperation:
        numero = Decimal("0")
    if numero.is_nan():
        numero = Decimal("0")
    sinal = "-" if numero < 0 else ""
    texto = f"{abs(numero):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{sinal}R$ {texto}"


def format_date_br(value: date | datetime | str | None, com_hora: bool = False) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
        except ValueError:
            return ""
    if com_hora and isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")


def calculate_age(birth_date: date | None, hoje: date | None = None) -> int:
    if not birth_date:
        return 0
    hoje = hoje or date.today()
    idade = hoje.year - birth_date.year
    if (hoje.month, hoje.day) < (birth_date.month, birth_date.day):
        idade -= 1
    return max(0, idade)


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    if minutes == 60:
        return "1 hora"
    horas, resto = divmod(minutes, 60)
    if resto == 0:
        return f"{horas} {'hora' if horas == 1 else 'horas'}"
    return f"{horas}h {resto}min"


def time_to_minutes(value: str | None) -> int:
    if not value:
        return 0
    partes = value.split(":")
    horas = int(partes[0])
    minutos = int(partes[1]) if len(partes) > 1 and partes[1] else 0
    return horas * 60 + minutos


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slots_para_duracao(duration: int, slot_minutos: int = 30) -> int:
    return math.ceil(duration / slot_minutos)


def require_fields(dados: Mapping[str, Any], campos: Mapping[str, str]) -> None:
    """
    Rejeita campos obrigatórios ausentes ou em branco.
    `campos` mapeia a chave ao rótulo mostrado na mensagem.
    """
    faltando = []
    for chave, rotulo in campos.items():
        valor = dados.get(chave)
        if valor is None or (isinstance(valor, str) and not valor.strip()):
            faltando.append(rotulo)
    if faltando:
        raise ErroDominio("Preencha os campos obrigatórios: " + ", ".join(faltando) + ".")
