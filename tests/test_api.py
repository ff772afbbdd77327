import pytest
from fastapi.testclient import TestClient

from clinica_fisio.api_main import app
from clinica_fisio.auth_service import criar_usuario
from clinica_fisio.models import Papel
from clinica_fisio.services import adicionar_evolucao

SENHA = "segredo123"


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def cadastrar(client, email, clinica="Clínica API"):
    r = client.post(
        "/api/auth/cadastro",
        json={"clinic_name": clinica, "full_name": "Admin API", "email": email, "password": SENHA},
    )
    assert r.status_code == 200, r.text
    return r.json()


def login(client, email, senha=SENHA):
    r = client.post("/api/auth/login", data={"username": email, "password": senha})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def convidar(client, headers, email, papel):
    r = client.post("/api/convites", json={"email": email, "role": papel}, headers=headers)
    assert r.status_code == 200, r.text
    token = r.json()["token"]
    r = client.post(f"/api/convites/{token}/aceitar", json={"full_name": "Convidado", "password": SENHA})
    assert r.status_code == 200, r.text
    return login(client, email)


@pytest.fixture
def admin_headers(client):
    cadastrar(client, "admin@api.com")
    return login(client, "admin@api.com")


class TestAuth:
    """Cadastro, login e perfil."""

    def test_cadastro_e_me(self, client):
        dados = cadastrar(client, "dona@api.com")
        r = client.get("/api/me", headers=login(client, "dona@api.com"))
        assert r.status_code == 200
        me = r.json()
        assert me["role"] == "admin"
        assert me["clinic_id"] == dados["clinic_id"]
        assert "financial.manage" in me["permissions"]

    def test_senha_errada(self, client):
        cadastrar(client, "dona@api.com")
        r = client.post("/api/auth/login", data={"username": "dona@api.com", "password": "errada"})
        assert r.status_code == 401

    def test_email_duplicado(self, client):
        cadastrar(client, "dona@api.com")
        r = client.post(
            "/api/auth/cadastro",
            json={"clinic_name": "Outra", "full_name": "Outra", "email": "dona@api.com", "password": SENHA},
        )
        assert r.status_code == 400

    def test_sem_token(self, client):
        assert client.get("/api/pacientes").status_code == 401
        assert client.get("/api/me", headers={"Authorization": "Bearer lixo"}).status_code == 401


class TestFluxoClinica:
    """Pacientes, profissionais e agenda pela API."""

    def test_paciente_e_agendamento(self, client, admin_headers):
        r = client.post(
            "/api/pacientes", json={"full_name": "Maria Silva", "phone": "(66) 99951-6222"}, headers=admin_headers
        )
        assert r.status_code == 200, r.text
        paciente_id = r.json()["paciente_id"]

        [p] = client.get("/api/pacientes", params={"busca": "maria"}, headers=admin_headers).json()
        assert p["id"] == paciente_id
        assert p["phone"] == "66999516222"

        r = client.post("/api/profissionais", json={"name": "Ana Souza"}, headers=admin_headers)
        profissional_id = r.json()["profissional_id"]

        ag = {
            "patient_id": paciente_id,
            "professional_id": profissional_id,
            "date": "2026-01-14",
            "time": "09:00",
            "duration": 45,
            "verificar_conflito": True,
        }
        assert client.post("/api/agendamentos", json=ag, headers=admin_headers).status_code == 200
        r = client.post("/api/agendamentos", json={**ag, "time": "09:30"}, headers=admin_headers)
        assert r.status_code == 409

        [linha] = client.get("/api/agenda/dia", params={"dia": "2026-01-14"}, headers=admin_headers).json()
        assert linha["patient_name"] == "Maria Silva"
        assert linha["status"] == "marcado"

    def test_dados_invalidos(self, client, admin_headers):
        r = client.post(
            "/api/pacientes",
            json={"full_name": "Fulano", "phone": "66999990000", "cpf": "123.456.789-00"},
            headers=admin_headers,
        )
        assert r.status_code == 400

    def test_opcoes_de_duracao(self, client, admin_headers):
        duracoes = client.get("/api/agenda/duracoes", headers=admin_headers).json()
        assert duracoes[1] == {"minutos": 45, "label": "45 minutos"}

    def test_cancelar_conta(self, client, admin_headers):
        conta = {"description": "Sessão", "amount": "100", "due_date": "2026-03-10"}
        conta_id = client.post("/api/financeiro/receber", json=conta, headers=admin_headers).json()["conta_id"]
        r = client.post(f"/api/financeiro/receber/{conta_id}/cancelar", headers=admin_headers)
        assert r.status_code == 200
        [c] = client.get("/api/financeiro/receber", headers=admin_headers).json()
        assert c["status_efetivo"] == "cancelado"
        assert client.post("/api/financeiro/pagar/nao-existe/cancelar", headers=admin_headers).status_code == 404

    def test_isolamento_entre_clinicas(self, client, admin_headers):
        r = client.post("/api/pacientes", json={"full_name": "Maria", "phone": "66999516222"}, headers=admin_headers)
        paciente_id = r.json()["paciente_id"]

        cadastrar(client, "outra@api.com", "Outra Clínica")
        outra = login(client, "outra@api.com")
        assert client.get(f"/api/pacientes/{paciente_id}", headers=outra).status_code == 404
        assert client.get("/api/pacientes", headers=outra).json() == []


class TestConvitesEPermissoes:
    """Convites por token e checagem de permissões por rota."""

    def test_convite_publico(self, client, admin_headers):
        r = client.post("/api/convites", json={"email": "nova@api.com", "role": "professional"}, headers=admin_headers)
        token = r.json()["token"]
        assert r.json()["link"].endswith(f"/convite/{token}")

        dados = client.get(f"/api/convites/{token}").json()
        assert dados["clinic_name"] == "Clínica API"
        assert client.get("/api/convites/nao-existe").status_code == 400

    def test_responsavel_so_ve_dashboard(self, client, admin_headers):
        responsavel = convidar(client, admin_headers, "mae@api.com", "guardian")
        assert client.get("/api/pacientes", headers=responsavel).status_code == 403
        assert client.get("/api/dashboard", headers=responsavel).status_code == 200

    def test_responsavel_com_acesso_ve_so_evolucoes_liberadas(self, client, admin_headers):
        clinic_id = client.get("/api/me", headers=admin_headers).json()["clinic_id"]
        r = client.post("/api/pacientes", json={"full_name": "Pedro", "phone": "66999516222"}, headers=admin_headers)
        paciente_id = r.json()["paciente_id"]
        prof = client.post("/api/profissionais", json={"name": "Ana Souza"}, headers=admin_headers).json()
        adicionar_evolucao(clinic_id, paciente_id, prof["profissional_id"], "Interna", "Cinesioterapia")
        liberada = adicionar_evolucao(
            clinic_id, paciente_id, prof["profissional_id"], "Para a família", "Cinesioterapia", visible_to_guardian=True
        )

        responsavel = convidar(client, admin_headers, "pai@api.com", "guardian")
        me = client.get("/api/me", headers=responsavel).json()
        client.put(f"/api/usuarios/{me['id']}/permissoes", json={"permissions": ["patients.read"]}, headers=admin_headers)

        url = f"/api/pacientes/{paciente_id}/evolucoes"
        assert [e["id"] for e in client.get(url, headers=responsavel).json()] == [liberada]
        assert len(client.get(url, headers=admin_headers).json()) == 2

    def test_recepcao_nao_lanca_despesa(self, client, admin_headers):
        recepcao = convidar(client, admin_headers, "recepcao@api.com", "receptionist")
        conta = {"description": "Aluguel", "amount": "1500", "due_date": "2026-03-10"}
        assert client.post("/api/financeiro/pagar", json=conta, headers=recepcao).status_code == 403
        r = client.post("/api/convites", json={"email": "x@api.com", "role": "admin"}, headers=recepcao)
        assert r.status_code == 403
        assert client.post("/api/financeiro/pagar", json=conta, headers=admin_headers).status_code == 200

    def test_permissoes_customizadas(self, client, admin_headers):
        recepcao = convidar(client, admin_headers, "recepcao@api.com", "receptionist")
        me = client.get("/api/me", headers=recepcao).json()

        r = client.put(
            f"/api/usuarios/{me['id']}/permissoes", json={"permissions": ["financial.create"]}, headers=admin_headers
        )
        assert r.status_code == 200, r.text
        assert client.get("/api/me", headers=recepcao).json()["permissions"] == ["financial.create"]
        assert client.get("/api/pacientes", headers=recepcao).status_code == 403


class TestSuper:
    """Troca de clínica e painel global do super administrador."""

    @pytest.fixture
    def super_headers(self, client):
        criar_usuario("root@api.com", SENHA, "Root", Papel.SUPER, None)
        return login(client, "root@api.com")

    def test_troca_de_clinica(self, client, admin_headers, super_headers):
        clinic_id = client.get("/api/me", headers=admin_headers).json()["clinic_id"]
        client.post("/api/pacientes", json={"full_name": "Maria", "phone": "66999516222"}, headers=admin_headers)

        assert client.get("/api/pacientes", headers=super_headers).status_code == 400
        r = client.post("/api/auth/trocar-clinica", json={"clinic_id": clinic_id}, headers=super_headers)
        assert r.status_code == 200, r.text
        na_clinica = {"Authorization": f"Bearer {r.json()['access_token']}"}
        [p] = client.get("/api/pacientes", headers=na_clinica).json()
        assert p["full_name"] == "Maria"

    def test_so_super_troca_de_clinica(self, client, admin_headers):
        outra = cadastrar(client, "outra@api.com", "Outra Clínica")
        r = client.post("/api/auth/trocar-clinica", json={"clinic_id": outra["clinic_id"]}, headers=admin_headers)
        assert r.status_code == 403

    def test_painel_global(self, client, admin_headers, super_headers):
        client.post("/api/pacientes", json={"full_name": "Maria", "phone": "66999516222"}, headers=admin_headers)
        cadastrar(client, "outra@api.com", "Outra Clínica")

        r = client.get("/api/sistema/estatisticas", headers=super_headers)
        assert r.status_code == 200, r.text
        d = r.json()
        assert d["total_clinicas"] == 2
        assert d["total_pacientes"] == 1
        assert d["total_usuarios"] == 3
        por_nome = {c["name"]: c for c in d["clinicas"]}
        assert por_nome["Clínica API"]["patients_count"] == 1
        assert por_nome["Outra Clínica"]["users_count"] == 1

        assert client.get("/api/sistema/estatisticas", headers=admin_headers).status_code == 403

    def test_desativar_clinica(self, client, admin_headers, super_headers):
        clinic_id = client.get("/api/me", headers=admin_headers).json()["clinic_id"]
        url = f"/api/sistema/clinicas/{clinic_id}/ativa"
        assert client.put(url, json={"is_active": False}, headers=admin_headers).status_code == 403

        r = client.put(url, json={"is_active": False}, headers=super_headers)
        assert r.json()["is_active"] is False
        r = client.post("/api/auth/trocar-clinica", json={"clinic_id": clinic_id}, headers=super_headers)
        assert r.status_code == 404
        assert client.get("/api/sistema/estatisticas", headers=super_headers).json()["clinicas_ativas"] == 0
