import pytest

from clinica_fisio import permissions as perms
from clinica_fisio.auth_service import autentica
from clinica_fisio.errors import ErroDominio, PermissaoNegada, RegistroNaoEncontrado
from clinica_fisio.models import Papel

SENHA = "segredo123"


class TestPresets:
    def test_admin_gerencia_modulos(self, admin):
        p = perms.permissoes_efetivas(admin)
        assert p.can_access("patients", "delete")
        assert p.can_access("financial", "create")
        assert p.can_access("settings", "update")
        assert not p.has_permission("system.create_clinics")

    def test_recepcao(self, usuario_factory):
        p = perms.permissoes_efetivas(usuario_factory(Papel.RECEPTIONIST))
        assert p.can_access("appointments", "delete")
        assert p.can_access("leads", "create")
        assert not p.can_access("financial", "create")
        assert not p.can_access("patients", "delete")

    def test_responsavel_so_ve_dashboard(self, usuario_factory):
        p = perms.permissoes_efetivas(usuario_factory(Papel.GUARDIAN))
        assert p.nomes == frozenset({"dashboard.read"})
        assert not p.has_any_permission(["patients.read", "appointments.read"])

    def test_super_tem_tudo(self, usuario_factory):
        p = perms.permissoes_efetivas(usuario_factory(Papel.SUPER))
        assert p.has_permission("superadmin.database_access")
        assert p.has_permission("qualquer.coisa")

    def test_seed_idempotente(self):
        perms.seed_permissoes()
        assert len(perms.listar_catalogo()) == len(perms.TODAS)
        assert perms.presets_do_papel(Papel.GUARDIAN) == ["dashboard.read"]


class TestCustomizacao:
    def test_customizadas_substituem_o_preset(self, admin, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        perms.atualizar_permissoes_usuario(admin, recep.id, ["patients.read", "reports.read"])
        p = perms.permissoes_efetivas(recep)
        assert p.nomes == frozenset({"patients.read", "reports.read"})
        assert not p.can_access("appointments", "read")

    def test_detalhes_marcam_customizadas(self, admin, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        perms.atualizar_permissoes_usuario(admin, recep.id, ["reports.read"])
        detalhes = {d["name"]: d for d in perms.detalhes_permissoes_usuario(admin, recep.id)}
        assert detalhes["reports.read"]["granted"] and detalhes["reports.read"]["is_custom"]
        assert not detalhes["patients.read"]["is_custom"]
        assert not any(n.startswith(("system.", "superadmin.")) for n in detalhes)

    def test_super_ve_recursos_restritos(self, admin, usuario_factory):
        sup = usuario_factory(Papel.SUPER)
        nomes = {d["name"] for d in perms.detalhes_permissoes_usuario(sup, admin.id)}
        assert "system.manage_all_clinics" in nomes

    def test_aplicar_preset(self, admin, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        aplicadas = perms.aplicar_preset(admin, recep.id, Papel.PROFESSIONAL)
        assert set(aplicadas) == set(perms.ROLE_PRESETS[Papel.PROFESSIONAL])

    def test_permissao_desconhecida(self, admin, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        with pytest.raises(ErroDominio):
            perms.atualizar_permissoes_usuario(admin, recep.id, ["pacientes.voar"])

    def test_admin_nao_concede_permissao_de_sistema(self, admin, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        with pytest.raises(PermissaoNegada):
            perms.atualizar_permissoes_usuario(admin, recep.id, ["system.create_clinics"])

    def test_recepcao_nao_gerencia(self, usuario_factory):
        recep = usuario_factory(Papel.RECEPTIONIST)
        prof = usuario_factory(Papel.PROFESSIONAL)
        with pytest.raises(PermissaoNegada):
            perms.atualizar_permissoes_usuario(recep, prof.id, ["patients.read"])

    def test_admin_de_outra_clinica(self, usuario_factory, outra_clinica):
        recep = usuario_factory(Papel.RECEPTIONIST)
        admin_outra = autentica("admin@outra.com", SENHA)
        with pytest.raises(RegistroNaoEncontrado):
            perms.detalhes_permissoes_usuario(admin_outra, recep.id)
