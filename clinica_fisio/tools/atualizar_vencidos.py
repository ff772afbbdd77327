from __future__ import annotations

import sys
from datetime import date

from clinica_fisio.financeiro import atualizar_status_vencidos
from clinica_fisio.services import init_db
from clinica_fisio.settings import configure_logging


def main() -> None:
    """
    Rotina diária: grava 'vencido' nas contas pendentes já vencidas.
    Uso: python -m clinica_fisio.tools.atualizar_vencidos [AAAA-MM-DD]
    """
    configure_logging()
    hoje = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today()
    init_db()
    n = atualizar_status_vencidos(hoje)
    print(f"OK: {n} contas marcadas como vencidas (referência {hoje.isoformat()}).")


if __name__ == "__main__":
    main()
