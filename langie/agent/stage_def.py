from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from langie.schemas import WorkflowState

DETERMINISTIC = "deterministic"
NON_DETERMINISTIC = "non-deterministic"
HUMAN = "human"
STAGE_MODES = (DETERMINISTIC, NON_DETERMINISTIC, HUMAN)

ATLAS = "ATLAS"
COMMON = "COMMON"

# picks the next stage id from the current state
Router = Callable[["WorkflowState"], str]


@dataclass(frozen=True)
class StageAbility:
    name: str
    mcp: str  # ATLAS | COMMON
    description: str = ""
    required: bool = True


@dataclass(frozen=True)
class Stage:
    id: str
    name: str
    mode: str  # deterministic | non-deterministic | human
    abilities: Tuple[StageAbility, ...] = ()
    next_stages: Tuple[str, ...] = ()
    emoji: str = ""
    description: str = ""
    router: Optional[Router] = None

    def __post_init__(self):
        if self.mode not in STAGE_MODES:
            raise ValueError(f"Unknown stage mode {self.mode!r} for stage {self.id}")
        # catalog entries are shared by every agent, keep them immutable
        object.__setattr__(self, "abilities", tuple(self.abilities))
        object.__setattr__(self, "next_stages", tuple(self.next_stages))

    @property
    def is_terminal(self) -> bool:
        return not self.next_stages
