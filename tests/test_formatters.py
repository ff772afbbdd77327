from datetime import date, datetime
from decimal import Decimal

import pytest

from clinica_fisio.errors import ErroDominio
from clinica_fisio.formatters import (
    calculate_age,
    format_cpf,
    format_currency,
    format_date_br,
    format_duration,
    format_phone,
    minutes_to_time,
    normalize_phone,
    require_fields,
    slots_para_duracao,
    time_to_minutes,
    validate_cpf,
    validate_email,
    validate_phone,
)


class TestTelefone:
    def test_normaliza_com_mascara(self):
        assert normalize_phone("(66) 99951-6222") == "66999516222"

    def test_adiciona_ddd_padrao(self):
        assert normalize_phone("99951-6222") == "66999516222"

    def test_remove_codigo_do_pais(self):
        assert normalize_phone("+55 66 99951-6222") == "66999516222"

    def test_vazio(self):
        assert normalize_phone(None) == ""

    def test_formata_celular_e_fixo(self):
        assert format_phone("66999516222") == "(66) 99951-6222"
        assert format_phone("6635441234") == "(66) 3544-1234"

    def test_valida(self):
        assert validate_phone("(66) 99951-6222")
        assert not validate_phone("123")


class TestCpf:
    def test_valido(self):
        assert validate_cpf("529.982.247-25")

    def test_digito_errado(self):
        assert not validate_cpf("529.982.247-26")

    def test_digitos_repetidos(self):
        assert not validate_cpf("111.111.111-11")

    def test_formata(self):
        assert format_cpf("52998224725") == "529.982.247-25"


def test_validate_email():
    assert validate_email("ana@clinica.com")
    assert not validate_email("ana@clinica")
    assert not validate_email("")


class TestMoedaEDatas:
    def test_moeda_brl(self):
        assert format_currency(Decimal("1234.5")) == "R$ 1.234,50"
        assert format_currency(None) == "R$ 0,00"
        assert format_currency(-10) == "-R$ 10,00"

    def test_data_br(self):
        assert format_date_br(date(2026, 1, 14)) == "14/01/2026"
        assert format_date_br("2026-01-14") == "14/01/2026"
        assert format_date_br(datetime(2026, 1, 14, 9, 30), com_hora=True) == "14/01/2026 09:30"
        assert format_date_br(None) == ""

    def test_idade(self):
        assert calculate_age(date(1990, 6, 15), hoje=date(2026, 6, 14)) == 35
        assert calculate_age(date(1990, 6, 15), hoje=date(2026, 6, 15)) == 36
        assert calculate_age(None) == 0


class TestDuracao:
    def test_format_duration(self):
        assert format_duration(45) == "45 min"
        assert format_duration(60) == "1 hora"
        assert format_duration(120) == "2 horas"
        assert format_duration(90) == "1h 30min"

    def test_minutos(self):
        assert time_to_minutes("08:30") == 510
        assert minutes_to_time(510) == "08:30"

    def test_slots(self):
        assert slots_para_duracao(30) == 1
        assert slots_para_duracao(45) == 2
        assert slots_para_duracao(90) == 3


def test_require_fields_lista_faltantes():
    with pytest.raises(ErroDominio) as exc:
        require_fields({"nome": " ", "telefone": None, "email": "a@b.com"},
                       {"nome": "nome", "telefone": "telefone", "email": "e-mail"})
    assert "nome, telefone" in str(exc.value)
