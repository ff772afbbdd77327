"""
Backend da Clínica de Fisioterapia (multi-clínica).

Estrutura:
- db.py          : engine e sessões SQLAlchemy
- models.py      : modelos ORM e enums
- services.py    : cadastros (pacientes, profissionais, salas, prontuário, leads, pacotes)
- agenda.py      : agendamentos, recorrência e disponibilidade
- financeiro.py  : contas a pagar/receber e relatórios
- permissions.py : papéis e permissões
- invitations.py : convites de usuários
- api_main.py    : API FastAPI
- cli.py         : operações pela linha de comando
"""
