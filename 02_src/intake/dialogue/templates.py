"""Outbound message wording."""

from .flow import (
    BRANCHES,
    BRANCHES_BY_OPTION,
    NAME_FIELD,
    SELECTED_OPTION_FIELD,
    Branch,
    FieldSpec,
)

MENU_TIP = '💡 _Digite "menu" para voltar ao início_'


def welcome() -> str:
    return (
        "EP ENGENHARIA\n\n"
        "Olá! Seja bem-vindo(a)! ☀️\n\n"
        "_Vamos ajudar você a encontrar a melhor solução em energia solar._"
    )


def name_prompt() -> str:
    return "_Como podemos chamar você?_ 😊"


def main_menu(name: str | None = None) -> str:
    greeting = f"Olá, {name}!" if name else "Olá!"
    options = "\n".join(f"{branch.option} - {branch.title}" for branch in BRANCHES)
    return (
        f"{greeting}\n\n"
        "_Escolha uma das opções abaixo:_\n\n"
        f"{options}\n"
        "6 - Falar com um(a) atendente\n\n"
        "_Digite o número da opção desejada_"
    )


def branch_opening(branch: Branch) -> str:
    first = branch.fields[0]
    return f"_{branch.title}_\n\n{branch.intro}\n\n{first.prompt}\n\n{MENU_TIP}"


def field_prompt(field: FieldSpec) -> str:
    return f"{field.prompt}\n\n{MENU_TIP}"


def forwarded_to_human() -> str:
    return (
        "_Falar com um(a) atendente_\n\n"
        "Um de nossos atendentes vai falar com você em breve. Por favor, aguarde."
    )


def invalid_option() -> str:
    return (
        "_Desculpe, não entendi. Digite apenas o número da opção desejada._\n\n"
        f"{MENU_TIP}"
    )


def thank_you() -> str:
    return (
        "_Obrigado pelas informações!_\n\n"
        "Nossa equipe vai analisar seus dados e entrar em contato em breve."
    )


def generic_error() -> str:
    return (
        "_Ops! Ocorreu um erro inesperado._ Tente novamente em instantes.\n\n"
        f"{MENU_TIP}"
    )


def summary(collected: dict[str, str]) -> str:
    """Personalized recap of everything collected in the current cycle."""
    name = collected.get(NAME_FIELD)
    header = f"_📋 Resumo das informações de {name}:_" if name else "_📋 Resumo das suas informações:_"
    lines = [header, ""]
    if name:
        lines.append(f"👤 Nome: {name}")

    branch = BRANCHES_BY_OPTION.get(collected.get(SELECTED_OPTION_FIELD, ""))
    if branch:
        lines.append(f"🎯 Opção escolhida: {branch.title}")
        for field in branch.fields:
            if field.key in collected:
                lines.append(f"• {field.label}: {collected[field.key]}")
    return "\n".join(lines)
