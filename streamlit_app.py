from __future__ import annotations

import base64
import json
import os
from datetime import date, datetime, timezone
from decimal import Decimal

import requests
import streamlit as st

st.set_page_config(page_title="Clínica Fisio", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")

STATUS_AGENDAMENTO = ["marcado", "confirmado", "realizado", "faltante", "cancelado"]
COLUNAS_LEAD = {
    "novo": "Novo",
    "contato_inicial": "Contato inicial",
    "agendamento": "Agendamento",
    "avaliacao": "Avaliação",
    "proposta": "Proposta",
    "cliente": "Cliente",
    "perdido": "Perdido",
}


# JWT helpers (só para a UI, sem verificar assinatura)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    p = jwt_payload(token)
    try:
        exp_int = int(p.get("exp"))
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)


def jwt_username(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("username") or p.get("sub") or "usuário")


# HTTP client (com JWT)

def _headers(token: str | None, json_body: bool = False) -> dict:
    headers = {"Content-Type": "application/json"} if json_body else {}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _resposta(r: requests.Response) -> dict | list:
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (token inválido/expirado ou backend reiniciado).")
    if r.status_code >= 400:
        try:
            detalhe = r.json().get("detail")
        except ValueError:
            detalhe = None
        if detalhe:
            raise RuntimeError(str(detalhe))
    r.raise_for_status()
    return r.json()


def api_get(path: str, token: str | None = None, params: dict | None = None) -> dict | list:
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10)
    return _resposta(r)


def api_post(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token, True), json=payload, timeout=10)
    return _resposta(r)


def api_login(username: str, password: str) -> str:
    # OAuth2PasswordRequestForm => x-www-form-urlencoded
    r = requests.post(
        f"{API_BASE}/api/auth/login",
        data={"username": username, "password": password},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()["access_token"]


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str) and len(token) > 0


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.cache_data.clear()
    st.rerun()


def require_auth() -> str | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Área restrita. Faça login pela barra lateral.")
        return None

    if jwt_is_expired(token):
        st.error("Sessão expirada. Faça logout pela barra lateral e entre novamente.")
        return None

    return token


def sessao_invalida(e: Exception) -> None:
    st.session_state["auth_error"] = str(e)
    st.error("Sessão inválida. Clique em Logout e entre novamente.")


def brl(valor) -> str:
    v = Decimal(str(valor or 0))
    return "R$ " + f"{v:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


# Sidebar login

with st.sidebar:
    st.header("Acesso")

    token = st.session_state.get("token")

    if not is_logged_in():
        u = st.text_input("E-mail", key="login_user")
        p = st.text_input("Senha", type="password", key="login_pass")

        if st.button("Entrar", key="login_btn"):
            try:
                new_token = api_login(u.strip().lower(), p)
                st.session_state["token"] = new_token
                st.session_state.pop("auth_error", None)
                st.success("Login efetuado.")
                st.rerun()
            except requests.HTTPError:
                st.error("Credenciais inválidas.")
            except requests.RequestException as e:
                st.error(str(e))
    else:
        # Dados do token, sem chamar /api/me a cada rerun
        st.write(f"Usuário: **{jwt_username(token)}**")
        papel = jwt_payload(token).get("role")
        if papel:
            st.caption(f"Papel: {papel}")

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")


# UI

st.title("Clínica de Fisioterapia")

tab1, tab2, tab3, tab4, tab5 = st.tabs(["Agenda", "Pacientes", "Financeiro", "Leads", "Dashboard"])


# Cadastros base

@st.cache_data(ttl=10)
def load_profissionais(token: str) -> list[dict]:
    return api_get("/api/profissionais", token=token)


@st.cache_data(ttl=10)
def load_salas(token: str) -> list[dict]:
    return api_get("/api/salas", token=token)


@st.cache_data(ttl=300)
def load_duracoes(token: str) -> list[dict]:
    return api_get("/api/agenda/duracoes", token=token)


@st.cache_data(ttl=10)
def load_pacientes(token: str, busca: str | None = None) -> list[dict]:
    return api_get("/api/pacientes", token=token, params={"busca": busca} if busca else None)


# TAB 1 - Agenda

with tab1:
    st.subheader("Agenda")

    token = require_auth()
    if token:
        try:
            profissionais = load_profissionais(token)
            salas = load_salas(token)
            pacientes = load_pacientes(token)
        except PermissionError as e:
            sessao_invalida(e)
            st.stop()
        except Exception as e:
            st.error(f"API indisponível ou erro: {e}")
            st.stop()

        c1, c2, c3 = st.columns(3)
        dia = c1.date_input("Dia", value=date.today(), key="ag_dia")
        visao = c2.radio("Visão", ["Dia", "Semana"], horizontal=True, key="ag_visao")
        filtro_prof = c3.selectbox(
            "Profissional",
            options=[None] + profissionais,
            format_func=lambda m: "Todos" if m is None else m["name"],
            key="ag_filtro_prof",
        )
        params = {"dia": dia.isoformat()}
        if filtro_prof:
            params["profissional_id"] = filtro_prof["id"]

        try:
            if visao == "Dia":
                itens = api_get("/api/agenda/dia", token=token, params=params)
                if not itens:
                    st.info("Nenhum agendamento neste dia.")
                for a in itens:
                    st.write(
                        f"- **{a['time']} - {a['end_time']}** | {a['patient_name']} | "
                        f"{a['professional_name']} | Sala: {a.get('room_name') or '-'} | {a['status_label']}"
                    )
            else:
                colunas = api_get("/api/agenda/semana", token=token, params=params)
                cols = st.columns(7)
                for col, dia_col in zip(cols, colunas):
                    with col:
                        st.markdown(f"**{dia_col['weekday']}**  \n{dia_col['date']}")
                        for a in dia_col["agendamentos"]:
                            st.caption(f"{a['time']} {a['patient_name']}")
        except PermissionError as e:
            sessao_invalida(e)
        except Exception as e:
            st.error(f"Erro na agenda: {e}")

        st.divider()
        with st.expander("Novo agendamento"):
            colA, colB, colC = st.columns(3)
            with colA:
                paciente = st.selectbox(
                    "Paciente",
                    options=pacientes,
                    format_func=lambda p: f"{p['full_name']} | {p.get('phone') or '-'}",
                    key="novo_ag_paciente",
                )
                profissional = st.selectbox(
                    "Profissional", options=profissionais, format_func=lambda m: m["name"], key="novo_ag_prof"
                )
                sala = st.selectbox(
                    "Sala",
                    options=[None] + salas,
                    format_func=lambda s: "Sem sala" if s is None else s["name"],
                    key="novo_ag_sala",
                )
            with colB:
                data_ag = st.date_input("Data", value=date.today(), key="novo_ag_data")
                duracoes = load_duracoes(token)
                duracao = st.selectbox(
                    "Duração",
                    options=[d["minutos"] for d in duracoes],
                    format_func=lambda m: next(d["label"] for d in duracoes if d["minutos"] == m),
                    index=1,
                    key="novo_ag_dur",
                )
                livres: list[str] = []
                if profissional:
                    try:
                        livres = api_get(
                            "/api/agenda/disponiveis",
                            token=token,
                            params={"dia": data_ag.isoformat(), "duracao": duracao, "profissional_id": profissional["id"]},
                        )
                    except Exception as e:
                        st.error(f"Erro ao buscar horários: {e}")
                hora = st.selectbox("Horário livre", options=livres, key="novo_ag_hora")
            with colC:
                tipo = st.text_input("Tipo de atendimento", value="consulta", key="novo_ag_tipo")
                notas = st.text_area("Observações", height=80, key="novo_ag_notas")
                recorrente = st.checkbox("Recorrente", key="novo_ag_rec")
                dias_sel: list[str] = []
                semanas = 1
                if recorrente:
                    dias_sel = st.multiselect(
                        "Dias da semana",
                        ["Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado"],
                        key="novo_ag_dias",
                    )
                    semanas = st.number_input("Semanas", min_value=1, max_value=52, value=4, key="novo_ag_semanas")
                cobranca = st.checkbox("Gerar conta a receber", key="novo_ag_cobranca")

            pode = bool(paciente and profissional and hora)
            if st.button("Agendar", key="novo_ag_submit", disabled=not pode):
                base = {
                    "patient_id": paciente["id"],
                    "professional_id": profissional["id"],
                    "time": hora,
                    "duration": duracao,
                    "treatment_type": tipo.strip() or "consulta",
                    "room_id": sala["id"] if sala else None,
                    "notes": notas or None,
                    "verificar_conflito": True,
                    "gerar_cobranca": cobranca,
                }
                nomes_dias = ["Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado"]
                try:
                    if recorrente:
                        if not dias_sel:
                            st.error("Escolha ao menos um dia da semana.")
                        else:
                            payload = dict(base, inicio=data_ag.isoformat(), semanas=int(semanas))
                            payload["dias_semana"] = [nomes_dias.index(d) for d in dias_sel]
                            res = api_post("/api/agendamentos/recorrentes", payload, token=token)
                            st.success(f"{res['total']} agendamentos criados.")
                    else:
                        res = api_post("/api/agendamentos", dict(base, date=data_ag.isoformat()), token=token)
                        st.success(f"Agendamento criado (ID: {res['agendamento_id']})")
                except PermissionError as e:
                    sessao_invalida(e)
                except Exception as e:
                    st.error(str(e))

        with st.expander("Alterar status"):
            try:
                do_dia = api_get("/api/agenda/dia", token=token, params={"dia": dia.isoformat()})
            except Exception as e:
                st.error(str(e))
                do_dia = []
            ag = st.selectbox(
                "Agendamento",
                options=do_dia,
                format_func=lambda a: f"{a['time']} {a['patient_name']} ({a['status_label']})",
                key="status_ag",
            )
            novo = st.selectbox("Novo status", STATUS_AGENDAMENTO, key="status_novo")
            if st.button("Salvar status", key="status_submit", disabled=not ag):
                try:
                    api_post(f"/api/agendamentos/{ag['id']}/status", {"status": novo}, token=token)
                    st.success("Status atualizado.")
                except PermissionError as e:
                    sessao_invalida(e)
                except Exception as e:
                    st.error(str(e))


# TAB 2 - Pacientes

with tab2:
    st.subheader("Pacientes")

    token = require_auth()
    if token:
        with st.expander("Cadastrar paciente"):
            c1, c2 = st.columns(2)
            nome = c1.text_input("Nome completo", key="pac_nome")
            tel = c2.text_input("Telefone", key="pac_tel")
            email = c1.text_input("E-mail (opcional)", key="pac_email")
            cpf = c2.text_input("CPF (opcional)", key="pac_cpf")

            if st.button("Cadastrar", key="pac_submit"):
                if not nome.strip() or not tel.strip():
                    st.error("Nome e telefone são obrigatórios.")
                else:
                    try:
                        res = api_post(
                            "/api/pacientes",
                            {
                                "full_name": nome.strip(),
                                "phone": tel.strip(),
                                "email": email.strip() or None,
                                "cpf": cpf.strip() or None,
                            },
                            token=token,
                        )
                        load_pacientes.clear()
                        st.success(f"Paciente cadastrado: {res.get('paciente_id')}")
                    except PermissionError as e:
                        sessao_invalida(e)
                    except Exception as e:
                        st.error(str(e))

        st.divider()
        busca = st.text_input("Buscar por nome, CPF ou telefone", key="pac_busca")

        try:
            pacientes = load_pacientes(token, busca.strip() or None)
            if not pacientes:
                st.info("Nenhum paciente encontrado.")
            for p in pacientes:
                with st.expander(f"{p['full_name']} | {p.get('phone') or '-'}"):
                    st.write(f"E-mail: {p.get('email') or '-'} | CPF: {p.get('cpf') or '-'}")
                    evolucoes = api_get(f"/api/pacientes/{p['id']}/evolucoes", token=token)
                    if not evolucoes:
                        st.caption("Sem evoluções registradas.")
                    for ev in evolucoes:
                        st.write(
                            f"- {ev['date']} | {ev.get('professional_name') or '-'} | "
                            f"Dor {ev.get('pain_scale') if ev.get('pain_scale') is not None else '-'} | "
                            f"{ev['observations']}"
                        )
        except PermissionError as e:
            sessao_invalida(e)
        except Exception as e:
            st.error(f"Erro ao carregar pacientes: {e}")


# TAB 3 - Financeiro

with tab3:
    st.subheader("Financeiro")

    token = require_auth()
    if token:
        try:
            r = api_get("/api/financeiro/resumo", token=token)
            m1, m2, m3, m4, m5 = st.columns(5)
            m1.metric("Recebido", brl(r["total_recebido"]))
            m2.metric("A receber", brl(r["a_receber"]))
            m3.metric("Pago", brl(r["total_pago"]))
            m4.metric("A pagar", brl(r["a_pagar"]))
            m5.metric("Saldo", brl(r["saldo"]))

            c1, c2 = st.columns(2)
            periodo = c1.selectbox("Período", ["todos", "este_mes", "mes_passado"], key="fin_periodo")
            status_f = c2.selectbox("Status", ["", "pendente", "pago", "vencido", "cancelado"], key="fin_status")
            params = {"periodo": periodo}
            if status_f:
                params["status"] = status_f

            sub_r, sub_p = st.tabs(["Contas a receber", "Contas a pagar"])
            with sub_r:
                for c in api_get("/api/financeiro/receber", token=token, params=params):
                    st.write(
                        f"- {c['due_date']} | {brl(c['amount'])} | {c['description']} | "
                        f"{c.get('patient_name') or '-'} | {c['status_label']}"
                    )
            with sub_p:
                for c in api_get("/api/financeiro/pagar", token=token, params=params):
                    st.write(f"- {c['due_date']} | {brl(c['amount'])} | {c['description']} | {c['status_label']}")

            with st.expander("Nova conta a pagar"):
                desc = st.text_input("Descrição", key="cp_desc")
                valor = st.number_input("Valor", min_value=0.0, step=10.0, key="cp_valor")
                venc = st.date_input("Vencimento", value=date.today(), key="cp_venc")
                cat = st.text_input("Categoria", key="cp_cat")
                if st.button("Salvar conta", key="cp_submit"):
                    try:
                        api_post(
                            "/api/financeiro/pagar",
                            {
                                "description": desc.strip(),
                                "amount": str(valor),
                                "due_date": venc.isoformat(),
                                "category": cat.strip() or None,
                            },
                            token=token,
                        )
                        st.success("Conta cadastrada.")
                    except Exception as e:
                        st.error(str(e))

            st.divider()
            st.write("Fluxo de caixa (6 meses)")
            fluxo = api_get("/api/relatorios/fluxo-caixa", token=token, params={"meses": 6})
            st.bar_chart(
                {f["mes"]: {"Entradas": float(f["entradas"]), "Saídas": float(f["saidas"])} for f in fluxo}
            )
        except PermissionError as e:
            sessao_invalida(e)
        except Exception as e:
            st.error(f"Erro no financeiro: {e}")


# TAB 4 - Leads

with tab4:
    st.subheader("Leads (funil)")

    token = require_auth()
    if token:
        with st.expander("Novo lead"):
            c1, c2 = st.columns(2)
            l_nome = c1.text_input("Nome", key="lead_nome")
            l_tel = c2.text_input("Telefone", key="lead_tel")
            l_origem = c1.selectbox(
                "Origem",
                ["outros", "indicacao", "site", "instagram_ads", "facebook_ads", "google_ads"],
                key="lead_origem",
            )
            l_interesse = c2.text_input("Interesse (opcional)", key="lead_interesse")
            if st.button("Cadastrar lead", key="lead_submit"):
                try:
                    api_post(
                        "/api/leads",
                        {
                            "name": l_nome.strip(),
                            "phone": l_tel.strip(),
                            "source": l_origem,
                            "treatment_interest": l_interesse.strip() or None,
                        },
                        token=token,
                    )
                    st.success("Lead cadastrado.")
                except PermissionError as e:
                    sessao_invalida(e)
                except Exception as e:
                    st.error(str(e))

        try:
            kanban = api_get("/api/leads/kanban", token=token)
            cols = st.columns(len(COLUNAS_LEAD))
            for col, (chave, rotulo) in zip(cols, COLUNAS_LEAD.items()):
                with col:
                    leads = kanban.get(chave, [])
                    st.markdown(f"**{rotulo}** ({len(leads)})")
                    for lead in leads:
                        st.caption(f"{lead['name']}  \n{lead['phone']}")
                        if chave != "cliente" and st.button("Converter", key=f"conv_{lead['id']}"):
                            try:
                                api_post(f"/api/leads/{lead['id']}/converter", {}, token=token)
                                load_pacientes.clear()
                                st.rerun()
                            except Exception as e:
                                st.error(str(e))
        except PermissionError as e:
            sessao_invalida(e)
        except Exception as e:
            st.error(f"Erro nos leads: {e}")


# TAB 5 - Dashboard

with tab5:
    st.subheader("Indicadores")

    token = require_auth()
    if token:
        try:
            d = api_get("/api/dashboard", token=token)
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Atendimentos hoje", d["agendamentos_hoje"])
            c2.metric("Últimos 7 dias", d["agendamentos_7_dias"])
            c3.metric("Últimos 30 dias", d["agendamentos_30_dias"])
            c4.metric("Faltas (30 dias)", d["faltas_30_dias"])

            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Pacientes ativos", d["pacientes_ativos"])
            c2.metric("Leads novos", d["leads_novos"])
            c3.metric("Leads convertidos", d["leads_convertidos"])
            c4.metric("Saldo", brl(d["saldo"]))

            c1, c2 = st.columns(2)
            c1.metric("Receita recebida", brl(d["receita_total"]))
            c2.metric("Receita pendente", brl(d["receita_pendente"]))
        except PermissionError as e:
            sessao_invalida(e)
        except Exception as e:
            st.error(f"Erro no dashboard: {e}")
