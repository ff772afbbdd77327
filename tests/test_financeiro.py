from datetime import date
from decimal import Decimal

import pytest

from clinica_fisio import financeiro as fin
from clinica_fisio.agenda import alterar_status, criar_agendamento
from clinica_fisio.errors import ErroDominio, RegistroNaoEncontrado
from clinica_fisio.models import StatusConta

HOJE = date(2026, 3, 15)


class TestStatusEfetivo:
    def test_regras(self):
        assert fin.status_efetivo({"status": "pendente", "due_date": date(2026, 3, 20)}, HOJE) == StatusConta.PENDENTE
        assert fin.status_efetivo({"status": "pendente", "due_date": date(2026, 3, 1)}, HOJE) == StatusConta.VENCIDO
        assert fin.status_efetivo(
            {"status": "pendente", "due_date": date(2026, 3, 1), "paid_date": date(2026, 3, 2)}, HOJE
        ) == StatusConta.PAGO
        assert fin.status_efetivo(
            {"status": "cancelado", "due_date": date(2026, 3, 1), "received_date": date(2026, 3, 2)}, HOJE
        ) == StatusConta.CANCELADO

    def test_vence_hoje_ainda_pendente(self):
        assert fin.status_efetivo({"status": "pendente", "due_date": HOJE}, HOJE) == StatusConta.PENDENTE

    def test_rotulos(self):
        assert fin.rotulo_status(StatusConta.PAGO) == "Pago"
        assert fin.rotulo_status(StatusConta.PAGO, receber=True) == "Recebido"
        assert fin.rotulo_status(StatusConta.VENCIDO) == "Vencido"


class TestContas:
    def test_valor_deve_ser_positivo(self, clinica):
        with pytest.raises(ErroDominio):
            fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "0", HOJE)

    def test_campos_obrigatorios(self, clinica):
        with pytest.raises(ErroDominio):
            fin.criar_conta_pagar(clinica.clinic_id, " ", "10", HOJE)

    def test_pagar_e_cancelada_nao_paga(self, clinica):
        c1 = fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "1500", date(2026, 3, 10), category="Aluguel")
        c2 = fin.criar_conta_pagar(clinica.clinic_id, "Luz", "200", date(2026, 3, 10))
        pago = fin.marcar_pagar_como_pago(clinica.clinic_id, c1, data=date(2026, 3, 11), metodo="pix")
        assert pago["status_efetivo"] == "pago"
        assert pago["payment_method"] == "pix"

        fin.cancelar_conta_pagar(clinica.clinic_id, c2)
        with pytest.raises(ErroDominio):
            fin.marcar_pagar_como_pago(clinica.clinic_id, c2)

    def test_lote_ignora_canceladas(self, clinica):
        ids = [fin.criar_conta_receber(clinica.clinic_id, f"Sessão {i}", "100", HOJE) for i in range(3)]
        fin.cancelar_conta_receber(clinica.clinic_id, ids[0])
        assert fin.marcar_receber_em_lote(clinica.clinic_id, ids, "dinheiro", HOJE) == 2
        assert fin.excluir_receber_em_lote(clinica.clinic_id, ids[:2]) == 2
        assert len(fin.listar_contas_receber(clinica.clinic_id, HOJE)) == 1

    def test_metodo_invalido(self, clinica):
        c = fin.criar_conta_receber(clinica.clinic_id, "Sessão", "100", HOJE)
        with pytest.raises(ErroDominio):
            fin.marcar_receber_como_recebido(clinica.clinic_id, c, "cheque")

    def test_isolamento_entre_clinicas(self, clinica, outra_clinica):
        c = fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "1500", HOJE)
        with pytest.raises(RegistroNaoEncontrado):
            fin.excluir_conta_pagar(outra_clinica.clinic_id, c)
        assert fin.listar_contas_pagar(outra_clinica.clinic_id) == []

    def test_paciente_de_outra_clinica(self, clinica, outra_clinica, paciente_id):
        with pytest.raises(RegistroNaoEncontrado):
            fin.criar_conta_receber(outra_clinica.clinic_id, "Sessão", "100", HOJE, patient_id=paciente_id)


class TestFiltros:
    @pytest.fixture
    def contas(self, clinica, paciente_id):
        fin.criar_conta_receber(clinica.clinic_id, "Sessão março", "100", date(2026, 3, 20), patient_id=paciente_id)
        fin.criar_conta_receber(clinica.clinic_id, "Sessão fevereiro", "250", date(2026, 2, 10))
        pago = fin.criar_conta_receber(clinica.clinic_id, "Avaliação", "80", date(2026, 3, 1))
        fin.marcar_receber_como_recebido(clinica.clinic_id, pago, "pix", date(2026, 3, 1))
        return fin.listar_contas_receber(clinica.clinic_id, HOJE)

    def test_por_status(self, contas):
        assert [c["description"] for c in fin.filtrar_contas(contas, "vencido", hoje=HOJE)] == ["Sessão fevereiro"]
        assert len(fin.filtrar_contas(contas, "todos", hoje=HOJE)) == 3

    def test_por_texto_inclui_nome_do_paciente(self, contas):
        assert len(fin.filtrar_contas(contas, busca="maria", hoje=HOJE)) == 1

    def test_por_periodo(self, contas):
        assert len(fin.filtrar_contas(contas, periodo="este_mes", hoje=HOJE)) == 2
        assert len(fin.filtrar_contas(contas, periodo="mes_passado", hoje=HOJE)) == 1
        personalizado = fin.filtrar_contas(
            contas, periodo="personalizado", inicio=date(2026, 3, 2), fim=date(2026, 3, 31), hoje=HOJE
        )
        assert [c["description"] for c in personalizado] == ["Sessão março"]

    def test_por_valor(self, contas):
        assert len(fin.filtrar_contas(contas, valor_min="90", valor_max="200", hoje=HOJE)) == 1

    def test_periodo_invalido(self, contas):
        with pytest.raises(ErroDominio):
            fin.filtrar_contas(contas, periodo="semestre")


class TestRelatorios:
    def test_resumo(self, clinica):
        r1 = fin.criar_conta_receber(clinica.clinic_id, "Sessão 1", "100", date(2026, 3, 1))
        fin.criar_conta_receber(clinica.clinic_id, "Sessão 2", "150", date(2026, 3, 1))
        fin.criar_conta_receber(clinica.clinic_id, "Sessão 3", "50", date(2026, 3, 30))
        p1 = fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "60", date(2026, 3, 5))
        fin.marcar_receber_como_recebido(clinica.clinic_id, r1, "pix", date(2026, 3, 2))
        fin.marcar_pagar_como_pago(clinica.clinic_id, p1, date(2026, 3, 5))

        r = fin.resumo_financeiro(clinica.clinic_id, HOJE)
        assert r["total_recebido"] == Decimal("100")
        assert r["a_receber"] == Decimal("200")
        assert r["receber_vencido"] == Decimal("150")
        assert r["total_pago"] == Decimal("60")
        assert r["a_pagar"] == Decimal("0")
        assert r["saldo"] == Decimal("40")

    def test_fluxo_de_caixa(self, clinica):
        r1 = fin.criar_conta_receber(clinica.clinic_id, "Sessão", "300", date(2026, 1, 10))
        fin.marcar_receber_como_recebido(clinica.clinic_id, r1, "cartao", date(2026, 1, 10))
        p1 = fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "100", date(2026, 3, 5))
        fin.marcar_pagar_como_pago(clinica.clinic_id, p1, date(2026, 3, 5))

        fluxo = fin.fluxo_caixa_mensal(clinica.clinic_id, 3, HOJE)
        assert [f["mes"] for f in fluxo] == ["2026-01", "2026-02", "2026-03"]
        assert fluxo[0]["entradas"] == Decimal("300")
        assert fluxo[2]["saldo"] == Decimal("-100")

    def test_categorias_e_metodos(self, clinica):
        fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "1000", HOJE, category="Aluguel")
        fin.criar_conta_pagar(clinica.clinic_id, "Papel", "50", HOJE)
        r = fin.criar_conta_receber(clinica.clinic_id, "Sessão", "120", HOJE)
        fin.marcar_receber_como_recebido(clinica.clinic_id, r, "pix", HOJE)

        assert fin.despesas_por_categoria(clinica.clinic_id) == {
            "Aluguel": Decimal("1000"),
            "Sem categoria": Decimal("50"),
        }
        assert fin.receitas_por_metodo(clinica.clinic_id) == {"PIX": Decimal("120")}

    def test_relatorio_periodo(self, clinica):
        r = fin.criar_conta_receber(clinica.clinic_id, "Sessão", "200", HOJE)
        fin.marcar_receber_como_recebido(clinica.clinic_id, r, "dinheiro", HOJE)
        p = fin.criar_conta_pagar(clinica.clinic_id, "Material", "50", HOJE, category="Material")
        fin.marcar_pagar_como_pago(clinica.clinic_id, p, HOJE)

        rel = fin.relatorio_periodo(clinica.clinic_id, date(2026, 3, 1), date(2026, 3, 31))
        assert rel["lucro_liquido"] == Decimal("150")
        assert rel["qtd_recebimentos"] == 1
        assert rel["despesas_por_categoria"] == {"Material": Decimal("50")}

        with pytest.raises(ErroDominio):
            fin.relatorio_periodo(clinica.clinic_id, date(2026, 3, 31), date(2026, 3, 1))

    def test_vencidas_e_gravacao_de_status(self, clinica):
        fin.criar_conta_pagar(clinica.clinic_id, "Aluguel", "1000", date(2026, 3, 1))
        fin.criar_conta_receber(clinica.clinic_id, "Sessão", "100", date(2026, 3, 20))

        vencidas = fin.contas_vencidas(clinica.clinic_id, HOJE)
        assert len(vencidas["pagar"]) == 1
        assert vencidas["receber"] == []

        assert fin.atualizar_status_vencidos(HOJE, clinica.clinic_id) == 1
        assert fin.listar_contas_pagar(clinica.clinic_id, HOJE)[0]["status"] == "vencido"

    def test_relatorio_do_paciente(self, clinica, paciente_id):
        fin.criar_conta_receber(clinica.clinic_id, "Sessão", "100", date(2026, 3, 1), patient_id=paciente_id)
        c = fin.criar_conta_receber(clinica.clinic_id, "Sessão", "100", date(2026, 3, 1), patient_id=paciente_id)
        fin.marcar_receber_como_recebido(clinica.clinic_id, c, "pix", HOJE)

        rel = fin.relatorio_financeiro_paciente(clinica.clinic_id, paciente_id, HOJE)
        assert rel["total"] == Decimal("200")
        assert rel["pago"] == Decimal("100")
        assert rel["vencido"] == Decimal("100")

    def test_relatorio_do_profissional(self, clinica, outra_clinica, paciente_id, profissional_id):
        cid = clinica.clinic_id
        feito = criar_agendamento(cid, paciente_id, profissional_id, date(2026, 3, 2), "09:00", gerar_cobranca=True)
        falta = criar_agendamento(cid, paciente_id, profissional_id, date(2026, 3, 3), "09:00", gerar_cobranca=True)
        criar_agendamento(cid, paciente_id, profissional_id, date(2026, 4, 1), "09:00")
        alterar_status(cid, feito, "realizado", hoje=HOJE)
        alterar_status(cid, falta, "faltante", hoje=HOJE)
        conta = next(c for c in fin.listar_contas_receber(cid) if c["appointment_id"] == feito)
        fin.marcar_receber_como_recebido(cid, conta["id"], "pix", date(2026, 3, 2))

        rel = fin.relatorio_financeiro_profissional(cid, profissional_id, date(2026, 3, 1), date(2026, 3, 31), HOJE)
        assert rel["atendimentos"] == 2
        assert rel["realizados"] == 1
        assert rel["faltas"] == 1
        assert rel["valor_realizado"] == Decimal("100")
        assert rel["recebido"] == Decimal("100")
        assert rel["a_receber"] == Decimal("100")

        with pytest.raises(RegistroNaoEncontrado):
            fin.relatorio_financeiro_profissional(outra_clinica.clinic_id, profissional_id)
