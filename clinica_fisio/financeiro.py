"""
Contas a pagar e a receber, filtros e relatórios.

O status exibido é derivado das datas e não do valor gravado:
- cancelada continua cancelada
- com data de pagamento/recebimento: pago
- vencimento antes de hoje: vencido
- caso contrário: pendente
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .db import db_session
from .errors import ErroDominio
from .formatters import require_fields
from .models import (
    Agendamento,
    ContaPagar,
    ContaReceber,
    MetodoPagamento,
    Paciente,
    Profissional,
    StatusAgendamento,
    StatusConta,
)
from .services import do_tenant, para_decimal

log = logging.getLogger(__name__)

ZERO = Decimal("0")

PERIODOS = ("todos", "este_mes", "mes_passado", "personalizado")

ROTULOS_METODO = {
    MetodoPagamento.DINHEIRO: "Dinheiro",
    MetodoPagamento.CARTAO: "Cartão",
    MetodoPagamento.PIX: "PIX",
    MetodoPagamento.TRANSFERENCIA: "Transferência",
}

CAMPOS_PAGAR = (
    "description",
    "amount",
    "due_date",
    "category",
    "supplier",
    "notes",
    "payment_method",
    "patient_id",
    "professional_id",
)
CAMPOS_RECEBER = (
    "description",
    "amount",
    "discount_amount",
    "due_date",
    "method",
    "notes",
    "patient_id",
    "professional_id",
    "appointment_id",
)


# =========================
# Status derivado
# =========================
def _campo(conta: Any, nome: str) -> Any:
    if isinstance(conta, dict):
        return conta.get(nome)
    return getattr(conta, nome, None)


def _valor_status(st: Any) -> str | None:
    return st.value if isinstance(st, StatusConta) else st


def status_efetivo(conta: Any, hoje: date | None = None) -> StatusConta:
    """Aceita a linha ORM ou o dict de `para_dict`."""
    hoje = hoje or date.today()
    if _valor_status(_campo(conta, "status")) == StatusConta.CANCELADO.value:
        return StatusConta.CANCELADO
    if _campo(conta, "paid_date") or _campo(conta, "received_date"):
        return StatusConta.PAGO
    if _campo(conta, "due_date") < hoje:
        return StatusConta.VENCIDO
    return StatusConta.PENDENTE


def rotulo_status(status: StatusConta, receber: bool = False) -> str:
    if status == StatusConta.PAGO:
        return "Recebido" if receber else "Pago"
    return {
        StatusConta.PENDENTE: "Pendente",
        StatusConta.VENCIDO: "Vencido",
        StatusConta.CANCELADO: "Cancelado",
    }[status]


def _metodo(valor: Any) -> MetodoPagamento | None:
    if valor is None or valor == "" or isinstance(valor, MetodoPagamento):
        return valor or None
    try:
        return MetodoPagamento(valor)
    except ValueError:
        raise ErroDominio(f"Método de pagamento inválido: {valor}") from None


def _validar_conta(dados: dict[str, Any], exigir: bool) -> dict[str, Any]:
    out = dict(dados)
    if exigir:
        require_fields(out, {"description": "descrição", "amount": "valor", "due_date": "vencimento"})
    elif "description" in out or "due_date" in out:
        require_fields(out, {k: r for k, r in (("description", "descrição"), ("due_date", "vencimento")) if k in out})
    if "description" in out:
        out["description"] = out["description"].strip()
    if "amount" in out:
        out["amount"] = para_decimal(out["amount"], "valor")
        if out["amount"] is None or out["amount"] <= 0:
            raise ErroDominio("O valor deve ser maior que zero.")
    if "discount_amount" in out:
        out["discount_amount"] = para_decimal(out["discount_amount"], "desconto")
    for chave in ("payment_method", "method"):
        if chave in out:
            out[chave] = _metodo(out[chave])
    return out


def _aplicar(conta: Any, dados: dict[str, Any], campos: tuple[str, ...]) -> None:
    desconhecidos = set(dados) - set(campos)
    if desconhecidos:
        raise ErroDominio("Campos não editáveis: " + ", ".join(sorted(desconhecidos)))
    for k, v in dados.items():
        setattr(conta, k, v)


def _vinculos(s: Session, clinic_id: str, conta: Any) -> None:
    if conta.patient_id:
        do_tenant(s, Paciente, clinic_id, conta.patient_id, "Paciente")
    if conta.professional_id:
        do_tenant(s, Profissional, clinic_id, conta.professional_id, "Profissional")
    if getattr(conta, "appointment_id", None):
        do_tenant(s, Agendamento, clinic_id, conta.appointment_id, "Agendamento")


def _com_status(conta: Any, hoje: date, receber: bool) -> dict:
    d = conta.para_dict()
    st = status_efetivo(conta, hoje)
    d["status_efetivo"] = st.value
    d["status_label"] = rotulo_status(st, receber)
    return d


# =========================
# Contas a pagar
# =========================
def criar_conta_pagar(clinic_id: str, description: str, amount: Any, due_date: date, **extra: Any) -> str:
    dados = _validar_conta({"description": description, "amount": amount, "due_date": due_date, **extra}, True)
    with db_session() as s:
        c = ContaPagar(clinic_id=clinic_id, status=StatusConta.PENDENTE)
        _aplicar(c, dados, CAMPOS_PAGAR)
        _vinculos(s, clinic_id, c)
        s.add(c)
        s.flush()
        return c.id


def atualizar_conta_pagar(clinic_id: str, conta_id: str, **dados: Any) -> dict:
    dados = _validar_conta(dados, False)
    with db_session() as s:
        c = do_tenant(s, ContaPagar, clinic_id, conta_id, "Conta a pagar")
        _aplicar(c, dados, CAMPOS_PAGAR)
        _vinculos(s, clinic_id, c)
        s.flush()
        return _com_status(c, date.today(), False)


def excluir_conta_pagar(clinic_id: str, conta_id: str) -> None:
    with db_session() as s:
        s.delete(do_tenant(s, ContaPagar, clinic_id, conta_id, "Conta a pagar"))


def marcar_pagar_como_pago(
    clinic_id: str,
    conta_id: str,
    data: date | None = None,
    metodo: MetodoPagamento | str | None = None,
) -> dict:
    with db_session() as s:
        c = do_tenant(s, ContaPagar, clinic_id, conta_id, "Conta a pagar")
        if c.status == StatusConta.CANCELADO:
            raise ErroDominio("Conta cancelada não pode ser paga.")
        c.paid_date = data or date.today()
        c.status = StatusConta.PAGO
        if metodo is not None:
            c.payment_method = _metodo(metodo)
        s.flush()
        return _com_status(c, date.today(), False)


def cancelar_conta_pagar(clinic_id: str, conta_id: str) -> None:
    with db_session() as s:
        do_tenant(s, ContaPagar, clinic_id, conta_id, "Conta a pagar").status = StatusConta.CANCELADO


def marcar_pagar_em_lote(clinic_id: str, ids: Iterable[str], data: date | None = None) -> int:
    ids = list(ids)
    with db_session() as s:
        res = s.execute(
            update(ContaPagar)
            .where(
                ContaPagar.clinic_id == clinic_id,
                ContaPagar.id.in_(ids),
                ContaPagar.status != StatusConta.CANCELADO,
            )
            .values(paid_date=data or date.today(), status=StatusConta.PAGO)
        )
        return res.rowcount


def excluir_pagar_em_lote(clinic_id: str, ids: Iterable[str]) -> int:
    ids = list(ids)
    with db_session() as s:
        res = s.execute(delete(ContaPagar).where(ContaPagar.clinic_id == clinic_id, ContaPagar.id.in_(ids)))
        return res.rowcount


def listar_contas_pagar(clinic_id: str, hoje: date | None = None) -> list[dict]:
    hoje = hoje or date.today()
    with db_session() as s:
        q = select(ContaPagar).where(ContaPagar.clinic_id == clinic_id).order_by(ContaPagar.due_date.asc())
        return [_com_status(c, hoje, False) for c in s.scalars(q)]


# =========================
# Contas a receber
# =========================
def criar_conta_receber(clinic_id: str, description: str, amount: Any, due_date: date, **extra: Any) -> str:
    dados = _validar_conta({"description": description, "amount": amount, "due_date": due_date, **extra}, True)
    with db_session() as s:
        c = ContaReceber(clinic_id=clinic_id, status=StatusConta.PENDENTE)
        _aplicar(c, dados, CAMPOS_RECEBER)
        _vinculos(s, clinic_id, c)
        s.add(c)
        s.flush()
        return c.id


def atualizar_conta_receber(clinic_id: str, conta_id: str, **dados: Any) -> dict:
    dados = _validar_conta(dados, False)
    with db_session() as s:
        c = do_tenant(s, ContaReceber, clinic_id, conta_id, "Conta a receber")
        _aplicar(c, dados, CAMPOS_RECEBER)
        _vinculos(s, clinic_id, c)
        s.flush()
        return _com_status(c, date.today(), True)


def excluir_conta_receber(clinic_id: str, conta_id: str) -> None:
    with db_session() as s:
        s.delete(do_tenant(s, ContaReceber, clinic_id, conta_id, "Conta a receber"))


def marcar_receber_como_recebido(
    clinic_id: str,
    conta_id: str,
    metodo: MetodoPagamento | str | None = None,
    data: date | None = None,
) -> dict:
    with db_session() as s:
        c = do_tenant(s, ContaReceber, clinic_id, conta_id, "Conta a receber")
        if c.status == StatusConta.CANCELADO:
            raise ErroDominio("Conta cancelada não pode ser recebida.")
        c.received_date = data or date.today()
        c.status = StatusConta.PAGO
        if metodo is not None:
            c.method = _metodo(metodo)
        s.flush()
        return _com_status(c, date.today(), True)


def cancelar_conta_receber(clinic_id: str, conta_id: str) -> None:
    with db_session() as s:
        do_tenant(s, ContaReceber, clinic_id, conta_id, "Conta a receber").status = StatusConta.CANCELADO


def marcar_receber_em_lote(
    clinic_id: str,
    ids: Iterable[str],
    metodo: MetodoPagamento | str | None = None,
    data: date | None = None,
) -> int:
    ids = list(ids)
    valores: dict[str, Any] = {"received_date": data or date.today(), "status": StatusConta.PAGO}
    if metodo is not None:
        valores["method"] = _metodo(metodo)
    with db_session() as s:
        res = s.execute(
            update(ContaReceber)
            .where(
                ContaReceber.clinic_id == clinic_id,
                ContaReceber.id.in_(ids),
                ContaReceber.status != StatusConta.CANCELADO,
            )
            .values(**valores)
        )
        return res.rowcount


def excluir_receber_em_lote(clinic_id: str, ids: Iterable[str]) -> int:
    ids = list(ids)
    with db_session() as s:
        res = s.execute(delete(ContaReceber).where(ContaReceber.clinic_id == clinic_id, ContaReceber.id.in_(ids)))
        return res.rowcount


def listar_contas_receber(clinic_id: str, hoje: date | None = None) -> list[dict]:
    """Com `patient_name` para a busca por paciente."""
    hoje = hoje or date.today()
    with db_session() as s:
        q = (
            select(ContaReceber, Paciente.full_name)
            .outerjoin(Paciente, Paciente.id == ContaReceber.patient_id)
            .where(ContaReceber.clinic_id == clinic_id)
            .order_by(ContaReceber.due_date.asc())
        )
        out = []
        for c, nome in s.execute(q).all():
            d = _com_status(c, hoje, True)
            d["patient_name"] = nome
            out.append(d)
        return out


# =========================
# Filtros
# =========================
def _mes_anterior(hoje: date) -> tuple[int, int]:
    return (hoje.year - 1, 12) if hoje.month == 1 else (hoje.year, hoje.month - 1)


def filtrar_contas(
    contas: list[dict],
    status: StatusConta | str | None = None,
    busca: str | None = None,
    periodo: str = "todos",
    inicio: date | None = None,
    fim: date | None = None,
    paciente_id: str | None = None,
    valor_min: Any = None,
    valor_max: Any = None,
    hoje: date | None = None,
) -> list[dict]:
    """Filtra as listas de `listar_contas_*` pelo status derivado, texto, período de vencimento e valor."""
    if periodo not in PERIODOS:
        raise ErroDominio(f"Período inválido: {periodo}")
    hoje = hoje or date.today()
    alvo = _valor_status(status) if status not in (None, "", "todos") else None
    termo = (busca or "").strip().lower()
    vmin = para_decimal(valor_min, "valor mínimo")
    vmax = para_decimal(valor_max, "valor máximo")

    out = []
    for c in contas:
        if alvo and status_efetivo(c, hoje).value != alvo:
            continue
        if termo:
            campos = (c.get("description"), c.get("category"), c.get("supplier"), c.get("patient_name"))
            if not any(termo in (v or "").lower() for v in campos):
                continue
        if paciente_id and c.get("patient_id") != paciente_id:
            continue

        venc = c["due_date"]
        if periodo == "este_mes" and (venc.year, venc.month) != (hoje.year, hoje.month):
            continue
        if periodo == "mes_passado" and (venc.year, venc.month) != _mes_anterior(hoje):
            continue
        if periodo == "personalizado":
            if inicio and venc < inicio:
                continue
            if fim and venc > fim:
                continue

        valor = Decimal(str(c["amount"]))
        if vmin is not None and valor < vmin:
            continue
        if vmax is not None and valor > vmax:
            continue
        out.append(c)
    return out


# =========================
# Resumos e relatórios
# =========================
def _soma(valores: Iterable[Any]) -> Decimal:
    return sum((Decimal(str(v)) for v in valores if v is not None), ZERO)


def _todas(s: Session, clinic_id: str) -> tuple[list[ContaPagar], list[ContaReceber]]:
    pagar = list(s.scalars(select(ContaPagar).where(ContaPagar.clinic_id == clinic_id)))
    receber = list(s.scalars(select(ContaReceber).where(ContaReceber.clinic_id == clinic_id)))
    return pagar, receber


def resumo_financeiro(clinic_id: str, hoje: date | None = None) -> dict[str, Decimal]:
    hoje = hoje or date.today()
    with db_session() as s:
        pagar, receber = _todas(s, clinic_id)

    abertos = (StatusConta.PENDENTE, StatusConta.VENCIDO)
    st_r = [(c, status_efetivo(c, hoje)) for c in receber]
    st_p = [(c, status_efetivo(c, hoje)) for c in pagar]
    out = {
        "total_recebido": _soma(c.amount for c, st in st_r if st == StatusConta.PAGO),
        "a_receber": _soma(c.amount for c, st in st_r if st in abertos),
        "receber_vencido": _soma(c.amount for c, st in st_r if st == StatusConta.VENCIDO),
        "total_pago": _soma(c.amount for c, st in st_p if st == StatusConta.PAGO),
        "a_pagar": _soma(c.amount for c, st in st_p if st in abertos),
        "pagar_vencido": _soma(c.amount for c, st in st_p if st == StatusConta.VENCIDO),
    }
    out["saldo"] = out["total_recebido"] - out["total_pago"]
    return out


def _no_periodo(d: date | None, inicio: date | None, fim: date | None) -> bool:
    if d is None:
        return False
    return (inicio is None or d >= inicio) and (fim is None or d <= fim)


def despesas_por_categoria(clinic_id: str, inicio: date | None = None, fim: date | None = None) -> dict[str, Decimal]:
    """Contas a pagar não canceladas, por categoria e vencimento no período."""
    with db_session() as s:
        pagar, _ = _todas(s, clinic_id)
    out: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for c in pagar:
        if c.status == StatusConta.CANCELADO or not _no_periodo(c.due_date, inicio, fim):
            continue
        out[c.category or "Sem categoria"] += Decimal(str(c.amount))
    return dict(sorted(out.items(), key=lambda kv: kv[1], reverse=True))


def receitas_por_metodo(clinic_id: str, inicio: date | None = None, fim: date | None = None) -> dict[str, Decimal]:
    """Valores recebidos no período, por forma de pagamento."""
    with db_session() as s:
        _, receber = _todas(s, clinic_id)
    out: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for c in receber:
        if c.status == StatusConta.CANCELADO or not _no_periodo(c.received_date, inicio, fim):
            continue
        out[ROTULOS_METODO.get(c.method, "Não informado")] += Decimal(str(c.amount))
    return dict(out)


def _meses_ate(hoje: date, meses: int) -> list[tuple[int, int]]:
    ano, mes = hoje.year, hoje.month
    out = []
    for _ in range(meses):
        out.append((ano, mes))
        ano, mes = (ano - 1, 12) if mes == 1 else (ano, mes - 1)
    return list(reversed(out))


def fluxo_caixa_mensal(clinic_id: str, meses: int = 6, hoje: date | None = None) -> list[dict]:
    """Entradas (recebidas) e saídas (pagas) dos últimos `meses`, inclusive o atual."""
    hoje = hoje or date.today()
    with db_session() as s:
        pagar, receber = _todas(s, clinic_id)

    entradas: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    saidas: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    for c in receber:
        if c.received_date and c.status != StatusConta.CANCELADO:
            entradas[(c.received_date.year, c.received_date.month)] += Decimal(str(c.amount))
    for c in pagar:
        if c.paid_date and c.status != StatusConta.CANCELADO:
            saidas[(c.paid_date.year, c.paid_date.month)] += Decimal(str(c.amount))

    return [
        {
            "mes": f"{ano:04d}-{mes:02d}",
            "entradas": entradas[(ano, mes)],
            "saidas": saidas[(ano, mes)],
            "saldo": entradas[(ano, mes)] - saidas[(ano, mes)],
        }
        for ano, mes in _meses_ate(hoje, meses)
    ]


def contas_vencidas(clinic_id: str, hoje: date | None = None) -> dict[str, list[dict]]:
    hoje = hoje or date.today()
    return {
        "pagar": [c for c in listar_contas_pagar(clinic_id, hoje) if c["status_efetivo"] == StatusConta.VENCIDO.value],
        "receber": [
            c for c in listar_contas_receber(clinic_id, hoje) if c["status_efetivo"] == StatusConta.VENCIDO.value
        ],
    }


def relatorio_periodo(clinic_id: str, inicio: date, fim: date) -> dict[str, Any]:
    if inicio > fim:
        raise ErroDominio("A data inicial deve ser anterior à final.")
    with db_session() as s:
        pagar, receber = _todas(s, clinic_id)

    recebidas = [c for c in receber if c.status != StatusConta.CANCELADO and _no_periodo(c.received_date, inicio, fim)]
    pagas = [c for c in pagar if c.status != StatusConta.CANCELADO and _no_periodo(c.paid_date, inicio, fim)]
    receitas = _soma(c.amount for c in recebidas)
    despesas = _soma(c.amount for c in pagas)

    por_categoria: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for c in pagas:
        por_categoria[c.category or "Sem categoria"] += Decimal(str(c.amount))
    por_metodo: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for c in recebidas:
        por_metodo[ROTULOS_METODO.get(c.method, "Não informado")] += Decimal(str(c.amount))

    return {
        "inicio": inicio,
        "fim": fim,
        "receitas": receitas,
        "despesas": despesas,
        "lucro_liquido": receitas - despesas,
        "qtd_recebimentos": len(recebidas),
        "qtd_pagamentos": len(pagas),
        "despesas_por_categoria": dict(por_categoria),
        "receitas_por_metodo": dict(por_metodo),
    }


def relatorio_financeiro_paciente(clinic_id: str, paciente_id: str, hoje: date | None = None) -> dict[str, Any]:
    hoje = hoje or date.today()
    with db_session() as s:
        do_tenant(s, Paciente, clinic_id, paciente_id, "Paciente")
    contas = [c for c in listar_contas_receber(clinic_id, hoje) if c["patient_id"] == paciente_id]
    ativas = [c for c in contas if c["status_efetivo"] != StatusConta.CANCELADO.value]
    return {
        "total": _soma(c["amount"] for c in ativas),
        "pago": _soma(c["amount"] for c in ativas if c["status_efetivo"] == StatusConta.PAGO.value),
        "pendente": _soma(c["amount"] for c in ativas if c["status_efetivo"] == StatusConta.PENDENTE.value),
        "vencido": _soma(c["amount"] for c in ativas if c["status_efetivo"] == StatusConta.VENCIDO.value),
        "contas": contas,
    }


def relatorio_financeiro_profissional(
    clinic_id: str,
    profissional_id: str,
    inicio: date | None = None,
    fim: date | None = None,
    hoje: date | None = None,
) -> dict[str, Any]:
    """Atendimentos realizados e receita vinculada ao profissional no período."""
    hoje = hoje or date.today()
    with db_session() as s:
        do_tenant(s, Profissional, clinic_id, profissional_id, "Profissional")
        ags = list(
            s.scalars(
                select(Agendamento).where(
                    Agendamento.clinic_id == clinic_id, Agendamento.professional_id == profissional_id
                )
            )
        )
        receber = list(
            s.scalars(
                select(ContaReceber).where(
                    ContaReceber.clinic_id == clinic_id, ContaReceber.professional_id == profissional_id
                )
            )
        )

    ags = [a for a in ags if _no_periodo(a.date, inicio, fim)]
    receber = [c for c in receber if c.status != StatusConta.CANCELADO and _no_periodo(c.due_date, inicio, fim)]
    realizados = [a for a in ags if a.status == StatusAgendamento.REALIZADO]
    return {
        "atendimentos": len(ags),
        "realizados": len(realizados),
        "faltas": sum(1 for a in ags if a.status == StatusAgendamento.FALTANTE),
        "valor_realizado": _soma(a.price for a in realizados),
        "recebido": _soma(c.amount for c in receber if status_efetivo(c, hoje) == StatusConta.PAGO),
        "a_receber": _soma(
            c.amount for c in receber if status_efetivo(c, hoje) in (StatusConta.PENDENTE, StatusConta.VENCIDO)
        ),
    }


def atualizar_status_vencidos(hoje: date | None = None, clinic_id: str | None = None) -> int:
    """Grava 'vencido' nas contas pendentes já vencidas; devolve quantas mudaram."""
    hoje = hoje or date.today()
    total = 0
    with db_session() as s:
        for model, quitacao in ((ContaPagar, ContaPagar.paid_date), (ContaReceber, ContaReceber.received_date)):
            q = (
                update(model)
                .where(model.status == StatusConta.PENDENTE, model.due_date < hoje, quitacao.is_(None))
            )
            if clinic_id:
                q = q.where(model.clinic_id == clinic_id)
            total += s.execute(q.values(status=StatusConta.VENCIDO)).rowcount
    log.info("%d contas marcadas como vencidas", total)
    return total
