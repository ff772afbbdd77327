from __future__ import annotations


class ErroDominio(ValueError):
    """Erro de regra de negócio; a API devolve 400."""


class RegistroNaoEncontrado(ErroDominio):
    pass


class PermissaoNegada(ErroDominio):
    pass


class ConviteInvalido(ErroDominio):
    pass


class ConflitoHorario(ErroDominio):
    pass


class PacoteIndisponivel(ErroDominio):
    pass
