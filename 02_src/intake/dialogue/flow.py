"""Menu options and the fields each detail branch collects."""

from dataclasses import dataclass

from ..models import DialogueState

NAME_FIELD = "name"
SELECTED_OPTION_FIELD = "selectedOption"
FORWARD_OPTION = "6"


@dataclass(frozen=True)
class FieldSpec:
    """A free-text field solicited from the contact."""

    key: str
    label: str
    prompt: str


@dataclass(frozen=True)
class Branch:
    """One menu option's field-collection sub-flow."""

    option: str
    state: DialogueState
    title: str
    intro: str
    fields: tuple[FieldSpec, ...]

    def next_missing(self, collected: dict[str, str]) -> FieldSpec | None:
        """First field in order that has not been collected yet."""
        for field in self.fields:
            if field.key not in collected:
                return field
        return None


BRANCHES: tuple[Branch, ...] = (
    Branch(
        option="1",
        state=DialogueState.OPTION_1_DETAILS,
        title="Reduzir a conta de luz em até 95%",
        intro="Ótimo! Vamos dimensionar seu sistema de energia solar.",
        fields=(
            FieldSpec(
                "energyConsumption",
                "Consumo mensal",
                "Qual é o seu consumo mensal em kWh? "
                "Se não souber, pode informar o valor médio da conta de luz.",
            ),
            FieldSpec(
                "panelPreference",
                "Preferência de equipamento",
                "Tem alguma preferência de marca ou tipo de painel?",
            ),
        ),
    ),
    Branch(
        option="2",
        state=DialogueState.OPTION_2_DETAILS,
        title="Poço artesiano com painel solar",
        intro="Perfeito! Vamos entender o seu poço artesiano.",
        fields=(
            FieldSpec("wellDepth", "Profundidade do poço", "Qual é a profundidade do poço?"),
            FieldSpec("waterFlow", "Vazão necessária", "Qual vazão de água você precisa?"),
            FieldSpec(
                "pumpPreference",
                "Preferência de bomba",
                "Tem preferência por algum tipo de bomba?",
            ),
        ),
    ),
    Branch(
        option="3",
        state=DialogueState.OPTION_3_DETAILS,
        title="Usinas de investimento",
        intro="Que bom! Vamos conhecer o seu perfil de investimento.",
        fields=(
            FieldSpec(
                "investmentGoal",
                "Objetivo de investimento",
                "Qual é o seu objetivo com o investimento?",
            ),
            FieldSpec(
                "riskProfile",
                "Perfil de risco",
                "Como você descreveria seu perfil de risco?",
            ),
            FieldSpec(
                "investmentType",
                "Tipo de investimento",
                "Que tipo de investimento você procura?",
            ),
        ),
    ),
    Branch(
        option="4",
        state=DialogueState.OPTION_4_DETAILS,
        title="Financiamento e incentivos",
        intro="Certo! Vamos falar sobre financiamento.",
        fields=(
            FieldSpec("budget", "Orçamento", "Qual é o seu orçamento para a instalação?"),
            FieldSpec(
                "financingPreference",
                "Preferência de financiamento",
                "Tem preferência por alguma forma de financiamento?",
            ),
            FieldSpec(
                "wantsIncentives",
                "Interesse em incentivos",
                "Gostaria de saber sobre incentivos disponíveis? (sim/não)",
            ),
        ),
    ),
    Branch(
        option="5",
        state=DialogueState.OPTION_5_DETAILS,
        title="Suporte técnico",
        intro="Vamos ajudar com a sua instalação.",
        fields=(
            FieldSpec(
                "technicalProblem",
                "Problema técnico",
                "Qual é o problema que você está enfrentando?",
            ),
            FieldSpec(
                "errorMessage",
                "Mensagem de erro",
                "O equipamento mostra alguma mensagem de erro? Qual?",
            ),
            FieldSpec(
                "wantsTechnicalVisit",
                "Visita técnica",
                "Deseja agendar uma visita técnica? (sim/não)",
            ),
        ),
    ),
)

BRANCHES_BY_OPTION: dict[str, Branch] = {branch.option: branch for branch in BRANCHES}
BRANCHES_BY_STATE: dict[DialogueState, Branch] = {branch.state: branch for branch in BRANCHES}
