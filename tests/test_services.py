from datetime import date, time
from decimal import Decimal

import pytest

from clinica_fisio import services as svc
from clinica_fisio.errors import ErroDominio, PacoteIndisponivel, RegistroNaoEncontrado
from clinica_fisio.financeiro import listar_contas_receber


class TestPacientes:
    def test_normaliza_telefone_e_cpf(self, clinica, paciente_id):
        p = svc.obter_paciente(clinica.clinic_id, paciente_id)
        assert p["phone"] == "66999516222"
        assert p["cpf"] == "52998224725"
        assert p["is_active"] is True

    def test_cpf_invalido(self, clinica):
        with pytest.raises(ErroDominio):
            svc.criar_paciente(clinica.clinic_id, "Fulano", "66999990000", cpf="123.456.789-00")

    def test_telefone_obrigatorio(self, clinica):
        with pytest.raises(ErroDominio):
            svc.criar_paciente(clinica.clinic_id, "Fulano", "")

    def test_campo_desconhecido(self, clinica):
        with pytest.raises(ErroDominio):
            svc.criar_paciente(clinica.clinic_id, "Fulano", "66999990000", apelido="Fu")

    def test_busca_por_nome_cpf_e_telefone(self, clinica, paciente_id):
        svc.criar_paciente(clinica.clinic_id, "João Pereira", "66988887777")
        assert [p["id"] for p in svc.listar_pacientes(clinica.clinic_id, "mari")] == [paciente_id]
        assert [p["id"] for p in svc.listar_pacientes(clinica.clinic_id, "529.982")] == [paciente_id]
        assert len(svc.listar_pacientes(clinica.clinic_id, "8888")) == 1

    def test_desativar_e_reativar(self, clinica, paciente_id):
        svc.desativar_paciente(clinica.clinic_id, paciente_id)
        assert svc.listar_pacientes(clinica.clinic_id) == []
        assert len(svc.listar_pacientes(clinica.clinic_id, ativos=False)) == 1
        svc.reativar_paciente(clinica.clinic_id, paciente_id)
        assert len(svc.listar_pacientes(clinica.clinic_id)) == 1

    def test_atualizar(self, clinica, paciente_id):
        p = svc.atualizar_paciente(clinica.clinic_id, paciente_id, gender="female", session_value="90")
        assert p["gender"] == "female"
        assert p["session_value"] == Decimal("90.00")
        with pytest.raises(ErroDominio):
            svc.atualizar_paciente(clinica.clinic_id, paciente_id, gender="x")

    def test_isolamento(self, clinica, outra_clinica, paciente_id):
        with pytest.raises(RegistroNaoEncontrado):
            svc.obter_paciente(outra_clinica.clinic_id, paciente_id)
        with pytest.raises(RegistroNaoEncontrado):
            svc.atualizar_paciente(outra_clinica.clinic_id, paciente_id, full_name="Invasor")
        assert svc.listar_pacientes(outra_clinica.clinic_id) == []


class TestCadastros:
    def test_profissional(self, clinica, profissional_id):
        svc.atualizar_profissional(clinica.clinic_id, profissional_id, specialties=["Ortopedia"])
        [p] = svc.listar_profissionais(clinica.clinic_id)
        assert p["specialties"] == ["Ortopedia"]
        svc.desativar_profissional(clinica.clinic_id, profissional_id)
        assert svc.listar_profissionais(clinica.clinic_id) == []
        assert len(svc.listar_profissionais(clinica.clinic_id, apenas_ativos=False)) == 1

    def test_vincular_usuario_de_outra_clinica(self, clinica, outra_clinica, admin, profissional_id):
        svc.vincular_usuario(clinica.clinic_id, profissional_id, admin.id)
        outro_prof = svc.criar_profissional(outra_clinica.clinic_id, "Outro")
        with pytest.raises(RegistroNaoEncontrado):
            svc.vincular_usuario(outra_clinica.clinic_id, outro_prof, admin.id)

    def test_sala_capacidade(self, clinica, sala_id):
        with pytest.raises(ErroDominio):
            svc.criar_sala(clinica.clinic_id, "Sala 0", capacity=0)
        sala = svc.atualizar_sala(clinica.clinic_id, sala_id, equipment=["Maca"])
        assert sala["equipment"] == ["Maca"]

    def test_configuracoes(self, clinica):
        cfg = svc.obter_configuracoes(clinica.clinic_id)
        assert cfg["work_start"] == time(7, 0)
        assert cfg["consultation_price"] == Decimal("100.00")

        with pytest.raises(ErroDominio):
            svc.atualizar_configuracoes(clinica.clinic_id, work_start=time(18, 0), work_end=time(8, 0))
        with pytest.raises(ErroDominio):
            svc.atualizar_configuracoes(clinica.clinic_id, lunch_start=time(12, 0))
        with pytest.raises(ErroDominio):
            svc.atualizar_configuracoes(clinica.clinic_id, lunch_start=time(6, 0), lunch_end=time(6, 30))

        svc.atualizar_configuracoes(clinica.clinic_id, lunch_start=time(12, 0), lunch_end=time(13, 0))
        assert svc.horario_funcionamento(clinica.clinic_id)[2] == time(12, 0)


class TestProntuario:
    def test_anamnese_e_mesclada(self, clinica, paciente_id):
        svc.atualizar_anamnese(clinica.clinic_id, paciente_id, {"chief_complaint": "Dor lombar"})
        pr = svc.atualizar_anamnese(clinica.clinic_id, paciente_id, {"allergies": "Dipirona"})
        assert pr["anamnesis"] == {"chief_complaint": "Dor lombar", "allergies": "Dipirona"}
        with pytest.raises(ErroDominio):
            svc.atualizar_anamnese(clinica.clinic_id, paciente_id, {"signo": "Leão"})

    def test_um_prontuario_por_paciente(self, clinica, paciente_id):
        a = svc.obter_ou_criar_prontuario(clinica.clinic_id, paciente_id)
        b = svc.obter_ou_criar_prontuario(clinica.clinic_id, paciente_id)
        assert a["id"] == b["id"]

    def test_evolucoes(self, clinica, paciente_id, profissional_id):
        svc.adicionar_evolucao(
            clinica.clinic_id, paciente_id, profissional_id, "Primeira sessão", "Cinesioterapia",
            data=date(2026, 1, 10), pain_scale=8,
        )
        recente = svc.adicionar_evolucao(
            clinica.clinic_id, paciente_id, profissional_id, "Melhora", "Cinesioterapia",
            data=date(2026, 1, 17), pain_scale=5, visible_to_guardian=True,
        )
        evs = svc.listar_evolucoes(clinica.clinic_id, paciente_id)
        assert [e["pain_scale"] for e in evs] == [5, 8]
        assert evs[0]["professional_name"] == "Ana Souza"

        visiveis = svc.listar_evolucoes(clinica.clinic_id, paciente_id, apenas_visiveis_responsavel=True)
        assert [e["id"] for e in visiveis] == [recente]

        svc.atualizar_evolucao(clinica.clinic_id, recente, pain_scale=3)
        svc.excluir_evolucao(clinica.clinic_id, evs[1]["id"])
        assert [e["pain_scale"] for e in svc.listar_evolucoes(clinica.clinic_id, paciente_id)] == [3]

    def test_escala_fora_da_faixa(self, clinica, paciente_id, profissional_id):
        with pytest.raises(ErroDominio):
            svc.adicionar_evolucao(
                clinica.clinic_id, paciente_id, profissional_id, "Obs", "Tratamento", pain_scale=11
            )

    def test_evolucao_de_outra_clinica(self, clinica, outra_clinica, paciente_id, profissional_id):
        ev = svc.adicionar_evolucao(clinica.clinic_id, paciente_id, profissional_id, "Obs", "Tratamento")
        with pytest.raises(RegistroNaoEncontrado):
            svc.excluir_evolucao(outra_clinica.clinic_id, ev)


class TestLeads:
    def test_kanban_na_ordem_do_funil(self, clinica):
        svc.criar_lead(clinica.clinic_id, "Lead 1", "66999990001")
        svc.criar_lead(clinica.clinic_id, "Lead 2", "66999990002", status="proposta", source="instagram_ads")
        colunas = svc.leads_por_status(clinica.clinic_id)
        assert list(colunas)[:2] == ["novo", "contato_inicial"]
        assert [lead["name"] for lead in colunas["novo"]] == ["Lead 1"]
        assert [lead["name"] for lead in colunas["proposta"]] == ["Lead 2"]

    def test_status_invalido(self, clinica):
        with pytest.raises(ErroDominio):
            svc.criar_lead(clinica.clinic_id, "Lead", "66999990001", status="quente")

    def test_converter_uma_vez(self, clinica):
        lead_id = svc.criar_lead(clinica.clinic_id, "Carla Dias", "66999990003", treatment_interest="Pilates")
        paciente_id = svc.converter_lead(clinica.clinic_id, lead_id)

        p = svc.obter_paciente(clinica.clinic_id, paciente_id)
        assert p["full_name"] == "Carla Dias"
        assert p["treatment_type"] == "Pilates"
        assert svc.listar_leads(clinica.clinic_id, "cliente")[0]["patient_id"] == paciente_id

        with pytest.raises(ErroDominio):
            svc.converter_lead(clinica.clinic_id, lead_id)


class TestPacotes:
    def test_venda_gera_conta_a_receber(self, clinica, paciente_id):
        pacote = svc.criar_pacote(clinica.clinic_id, "10 sessões", 10, "900")
        pp = svc.vender_pacote(clinica.clinic_id, paciente_id, pacote, data_compra=date(2026, 1, 1), metodo="pix")

        [vendido] = svc.listar_pacotes_paciente(clinica.clinic_id, paciente_id)
        assert vendido["id"] == pp
        assert vendido["expiry_date"] == date(2026, 4, 1)
        assert vendido["sessions_remaining"] == 10

        [conta] = listar_contas_receber(clinica.clinic_id)
        assert conta["amount"] == Decimal("900.00")
        assert conta["patient_package_id"] == pp
        assert conta["method"] == "pix"

    def test_validacoes(self, clinica):
        with pytest.raises(ErroDominio):
            svc.criar_pacote(clinica.clinic_id, "Grátis", 5, "0")
        with pytest.raises(ErroDominio):
            svc.criar_pacote(clinica.clinic_id, "Vazio", 0, "100")

    def test_pacote_inativo_nao_vende(self, clinica, paciente_id):
        pacote = svc.criar_pacote(clinica.clinic_id, "5 sessões", 5, "450")
        svc.desativar_pacote(clinica.clinic_id, pacote)
        assert svc.listar_pacotes(clinica.clinic_id) == []
        with pytest.raises(ErroDominio):
            svc.vender_pacote(clinica.clinic_id, paciente_id, pacote)

    def test_consumo_ate_esgotar(self, clinica, paciente_id):
        pacote = svc.criar_pacote(clinica.clinic_id, "2 sessões", 2, "180")
        pp = svc.vender_pacote(clinica.clinic_id, paciente_id, pacote, data_compra=date(2026, 1, 1))
        hoje = date(2026, 1, 10)
        assert svc.consumir_sessao(clinica.clinic_id, pp, hoje) == 1
        assert svc.consumir_sessao(clinica.clinic_id, pp, hoje) == 0
        with pytest.raises(PacoteIndisponivel):
            svc.consumir_sessao(clinica.clinic_id, pp, hoje)
        assert svc.listar_pacotes_paciente(clinica.clinic_id, paciente_id)[0]["status"] == "usado"

    def test_expirado_fica_gravado(self, clinica, paciente_id):
        pacote = svc.criar_pacote(clinica.clinic_id, "2 sessões", 2, "180", validity_days=30)
        pp = svc.vender_pacote(clinica.clinic_id, paciente_id, pacote, data_compra=date(2026, 1, 1))
        with pytest.raises(PacoteIndisponivel):
            svc.consumir_sessao(clinica.clinic_id, pp, date(2026, 3, 1))
        assert svc.listar_pacotes_paciente(clinica.clinic_id, paciente_id)[0]["status"] == "expirado"
        assert svc.sessoes_restantes(clinica.clinic_id, pp) == 2
