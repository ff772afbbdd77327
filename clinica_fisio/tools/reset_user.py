from __future__ import annotations

import sys

from sqlalchemy import text

from clinica_fisio.auth_security import hash_password
from clinica_fisio.db import db_session


def main() -> None:
    if len(sys.argv) < 2:
        print("Uso: python -m clinica_fisio.tools.reset_user <email> [nova_senha]")
        raise SystemExit(2)

    username = sys.argv[1].strip().lower()
    if not username:
        print("E-mail inválido.")
        raise SystemExit(2)

    # com nova senha: redefine e reativa; sem: remove o usuário
    if len(sys.argv) > 2:
        with db_session() as s:
            res = s.execute(
                text("UPDATE usuarios SET password_hash = :h, is_active = :a WHERE username = :u"),
                {"h": hash_password(sys.argv[2]), "a": True, "u": username},
            )
        print(f"OK: senha de '{username}' redefinida." if res.rowcount else f"Usuário '{username}' não existe.")
        return

    por_usuario = "(SELECT id FROM usuarios WHERE username = :u)"
    with db_session() as s:
        s.execute(text(f"DELETE FROM permissoes_usuario WHERE user_id IN {por_usuario}"), {"u": username})
        s.execute(text(f"UPDATE convites_usuario SET invited_by = NULL WHERE invited_by IN {por_usuario}"), {"u": username})
        s.execute(text(f"UPDATE profissionais SET usuario_id = NULL WHERE usuario_id IN {por_usuario}"), {"u": username})
        s.execute(text("DELETE FROM usuarios WHERE username = :u"), {"u": username})

    print(f"OK: usuário '{username}' removido (se existia).")


if __name__ == "__main__":
    main()
