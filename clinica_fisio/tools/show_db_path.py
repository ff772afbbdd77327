from __future__ import annotations

from sqlalchemy import inspect

from clinica_fisio.db import engine
from clinica_fisio.settings import CACHE_PATH


def main() -> None:
    print("ENGINE URL:", engine.url.render_as_string(hide_password=True))
    print("DB FILE   :", engine.url.database or "(memória)")
    print("CACHE     :", CACHE_PATH)
    tabelas = inspect(engine).get_table_names()
    print("TABELAS   :", ", ".join(tabelas) if tabelas else "(nenhuma, rode 'init')")


if __name__ == "__main__":
    main()
