from __future__ import annotations

import argparse
import logging
from datetime import date

from sqlalchemy import or_, select

from clinica_fisio.agenda import alterar_status, criar_agendamento, criar_agendamentos_recorrentes
from clinica_fisio.auth_models import Usuario
from clinica_fisio.cache import PersistentCache
from clinica_fisio.db import db_session
from clinica_fisio.errors import ErroDominio
from clinica_fisio.financeiro import atualizar_status_vencidos, contas_vencidas, resumo_financeiro
from clinica_fisio.formatters import format_currency, format_date_br, format_phone
from clinica_fisio.invitations import criar_convite, link_convite
from clinica_fisio.models import Clinica, Papel
from clinica_fisio.seed import DEMO_ADMIN, DEMO_SENHA, seed_base, seed_demo
from clinica_fisio.services import (
    criar_paciente,
    init_db,
    listar_clinicas,
    listar_pacientes,
    listar_pacotes,
    listar_profissionais,
    listar_salas,
)
from clinica_fisio.settings import API_BASE, configure_logging

log = logging.getLogger(__name__)

cache = PersistentCache()


def _clinica_atual(args: argparse.Namespace) -> str:
    if getattr(args, "clinica", None):
        return args.clinica
    dados = cache.get_cached_clinic_data()
    if not dados:
        raise SystemExit("Nenhuma clínica selecionada: use 'usar-clinica' ou --clinica.")
    return dados["clinic_id"]


def _lembrar_clinica(clinic_id: str) -> None:
    with db_session() as s:
        c = s.get(Clinica, clinic_id)
        cache.cache_clinic_data(c.id, c.name, c.clinic_code)
    print(f"Clínica atual: {c.name} ({c.clinic_code})")


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inicializado e permissões carregadas.")


def cmd_seed_demo(args: argparse.Namespace) -> None:
    clinic_id = seed_demo()
    _lembrar_clinica(clinic_id)
    print(f"Login demo: {DEMO_ADMIN} / {DEMO_SENHA}")


def cmd_usar_clinica(args: argparse.Namespace) -> None:
    with db_session() as s:
        c = s.execute(
            select(Clinica).where(or_(Clinica.id == args.clinica_ref, Clinica.clinic_code == args.clinica_ref))
        ).scalar_one_or_none()
        clinic_id = c.id if c else None
    if clinic_id is None:
        raise SystemExit(f"Clínica não encontrada: {args.clinica_ref}")
    _lembrar_clinica(clinic_id)


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "clinicas":
        for c in listar_clinicas():
            print(f"{c['id']} | {c['clinic_code']} | {c['name']}")
        return

    clinic_id = _clinica_atual(args)
    if args.entity == "pacientes":
        for p in listar_pacientes(clinic_id, busca=args.busca):
            print(f"{p['id']} | {p['full_name']} | {format_phone(p['phone'])}")
    elif args.entity == "profissionais":
        for p in listar_profissionais(clinic_id):
            print(f"{p['id']} | {p['name']} | CREFITO {p['crefito'] or '-'}")
    elif args.entity == "salas":
        for r in listar_salas(clinic_id):
            print(f"{r['id']} | {r['name']} (capacidade {r['capacity']})")
    elif args.entity == "pacotes":
        for p in listar_pacotes(clinic_id):
            print(f"{p['id']} | {p['name']} | {p['sessions']} sessões | {format_currency(p['price'])}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = criar_paciente(_clinica_atual(args), args.nome, args.telefone, email=args.email, cpf=args.cpf)
    print(f"Paciente criado: {pid}")


def cmd_book(args: argparse.Namespace) -> None:
    clinic_id = _clinica_atual(args)
    comum = dict(
        duration=args.duracao,
        treatment_type=args.tipo,
        price=args.valor,
        room_id=args.sala_id,
        notes=args.notas,
        verificar_conflito=args.verificar_conflito,
        gerar_cobranca=args.cobranca,
    )
    if args.semanas:
        dias = [int(d) for d in args.dias.split(",") if d.strip()] if args.dias else []
        ids = criar_agendamentos_recorrentes(
            clinic_id, args.paciente_id, args.profissional_id, args.data, args.hora, dias, args.semanas, **comum
        )
        print(f"{len(ids)} agendamentos criados.")
        return
    ag_id = criar_agendamento(clinic_id, args.paciente_id, args.profissional_id, args.data, args.hora, **comum)
    print(f"Agendamento criado: {ag_id}")


def cmd_status(args: argparse.Namespace) -> None:
    ag = alterar_status(_clinica_atual(args), args.agendamento_id, args.status)
    print(f"Agendamento {ag['id']}: {ag['status']}")


def cmd_financeiro(args: argparse.Namespace) -> None:
    r = resumo_financeiro(_clinica_atual(args))
    print(f"Recebido:   {format_currency(r['total_recebido'])}")
    print(f"A receber:  {format_currency(r['a_receber'])}")
    print(f"Pago:       {format_currency(r['total_pago'])}")
    print(f"A pagar:    {format_currency(r['a_pagar'])}")
    print(f"Saldo:      {format_currency(r['saldo'])}")


def cmd_vencidos(args: argparse.Namespace) -> None:
    """
    Lista contas vencidas da clínica atual.
    Com --gravar, persiste o status 'vencido' nas pendentes.
    """
    clinic_id = _clinica_atual(args)
    if args.gravar:
        n = atualizar_status_vencidos(clinic_id=clinic_id)
        print(f"{n} contas marcadas como vencidas.")

    vencidas = contas_vencidas(clinic_id)
    if not vencidas["pagar"] and not vencidas["receber"]:
        print("Nenhuma conta vencida.")
        return
    for tipo, contas in (("PAGAR", vencidas["pagar"]), ("RECEBER", vencidas["receber"])):
        for c in contas:
            print(f"[{tipo}] {format_date_br(c['due_date'])} | {format_currency(c['amount'])} | {c['description']}")


def cmd_convidar(args: argparse.Namespace) -> None:
    clinic_id = _clinica_atual(args)
    with db_session() as s:
        q = select(Usuario).where(Usuario.clinic_id == clinic_id, Usuario.role == Papel.ADMIN)
        if args.por:
            q = select(Usuario).where(Usuario.username == args.por.strip().lower())
        ator = s.scalars(q).first()
    if ator is None:
        raise SystemExit("Usuário que convida não encontrado.")

    c = criar_convite(ator, args.email, args.papel, clinic_id=clinic_id)
    print(f"Convite criado para {c['email']} ({c['role']}), expira em {format_date_br(c['expires_at'], True)}")
    print(link_convite(c["token"], args.base_url))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinica_fisio_cli", description="CLI Clínica de Fisioterapia")
    p.add_argument("--clinica", default=None, help="id da clínica (padrão: a selecionada com usar-clinica)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Cria DB e carrega permissões")
    p_init.set_defaults(func=cmd_init)

    p_demo = sub.add_parser("seed-demo", help="Cria a clínica de demonstração")
    p_demo.set_defaults(func=cmd_seed_demo)

    p_usar = sub.add_parser("usar-clinica", help="Seleciona a clínica atual (id ou código)")
    p_usar.add_argument("clinica_ref")
    p_usar.set_defaults(func=cmd_usar_clinica)

    p_list = sub.add_parser("list", help="Lista entidades")
    p_list.add_argument("entity", choices=["clinicas", "pacientes", "profissionais", "salas", "pacotes"])
    p_list.add_argument("--busca", default=None, help="nome, CPF ou telefone (pacientes)")
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Cadastra paciente")
    p_addp.add_argument("--nome", required=True)
    p_addp.add_argument("--telefone", required=True)
    p_addp.add_argument("--email", default=None)
    p_addp.add_argument("--cpf", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_book = sub.add_parser("book", help="Agenda atendimento (avulso ou recorrente)")
    p_book.add_argument("--paciente-id", required=True)
    p_book.add_argument("--profissional-id", required=True)
    p_book.add_argument("--data", type=date.fromisoformat, required=True, help="ex: 2026-01-14")
    p_book.add_argument("--hora", required=True, help="ex: 10:30")
    p_book.add_argument("--duracao", type=int, default=45)
    p_book.add_argument("--tipo", default="consulta")
    p_book.add_argument("--valor", default=None)
    p_book.add_argument("--sala-id", default=None)
    p_book.add_argument("--notas", default=None)
    p_book.add_argument("--semanas", type=int, default=0, help="recorrência: número de semanas")
    p_book.add_argument("--dias", default=None, help="recorrência: dias da semana, 0=domingo (ex: 1,3,5)")
    p_book.add_argument("--verificar-conflito", action="store_true")
    p_book.add_argument("--cobranca", action="store_true", help="Gera conta a receber para cada agendamento")
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("status", help="Altera status do agendamento")
    p_status.add_argument("--agendamento-id", required=True)
    p_status.add_argument("--status", required=True, choices=["marcado", "confirmado", "realizado", "faltante", "cancelado"])
    p_status.set_defaults(func=cmd_status)

    p_fin = sub.add_parser("financeiro", help="Resumo financeiro da clínica")
    p_fin.set_defaults(func=cmd_financeiro)

    p_venc = sub.add_parser("vencidos", help="Contas vencidas")
    p_venc.add_argument("--gravar", action="store_true", help="Grava status 'vencido' nas pendentes")
    p_venc.set_defaults(func=cmd_vencidos)

    p_conv = sub.add_parser("convidar", help="Convida usuário para a clínica")
    p_conv.add_argument("--email", required=True)
    p_conv.add_argument("--papel", default="receptionist", choices=[r.value for r in Papel if r != Papel.SUPER])
    p_conv.add_argument("--por", default=None, help="e-mail de quem convida (padrão: admin da clínica)")
    p_conv.add_argument("--base-url", default=API_BASE)
    p_conv.set_defaults(func=cmd_convidar)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    configure_logging()
    init_db()  # garante tabelas
    try:
        args.func(args)
    except ErroDominio as e:
        raise SystemExit(f"Erro: {e}")


if __name__ == "__main__":
    main()
