from typing import Dict, Iterator, List, Optional, Tuple
from langie.agent.stage_def import (
    Stage, StageAbility, DETERMINISTIC, NON_DETERMINISTIC, HUMAN, ATLAS, COMMON,
)

INITIAL_STAGE = "intake"
TERMINAL_STAGE = "complete"


def route_after_prepare(state) -> str:
    # ASK is only needed when contact details are missing
    payload = state.payload
    has_required_info = bool(payload.customer_name) and bool(payload.email)
    return "retrieve" if has_required_info else "ask"


def route_after_decide(state) -> str:
    return "update" if state.escalated else "create"


# Stage graph config
STAGE_CONFIG: List[Stage] = [
    Stage("intake", "INTAKE", DETERMINISTIC, [
        StageAbility("accept_payload", COMMON, "Capture incoming request payload"),
    ], ["understand"], emoji="📥", description="Accept incoming request payload"),
    Stage("understand", "UNDERSTAND", DETERMINISTIC, [
        StageAbility("parse_request_text", COMMON, "Convert unstructured request to structured data"),
        StageAbility("extract_entities", ATLAS, "Identify product, account, dates"),
    ], ["prepare"], emoji="🧠", description="Parse and extract entities from request"),
    Stage("prepare", "PREPARE", DETERMINISTIC, [
        StageAbility("normalize_fields", COMMON, "Standardize dates, codes, IDs"),
        StageAbility("enrich_records", ATLAS, "Add SLA, historical ticket info"),
        StageAbility("add_flags_calculations", COMMON, "Compute priority or SLA risk"),
    ], ["ask", "retrieve"], emoji="🛠️", description="Normalize and enrich data",
        router=route_after_prepare),
    Stage("ask", "ASK", HUMAN, [
        StageAbility("clarify_question", ATLAS, "Request missing information"),
    ], ["wait"], emoji="❓", description="Request missing information"),
    Stage("wait", "WAIT", DETERMINISTIC, [
        StageAbility("extract_answer", ATLAS, "Capture concise response"),
    ], ["retrieve"], emoji="⏳", description="Wait for and process human response"),
    Stage("retrieve", "RETRIEVE", DETERMINISTIC, [
        StageAbility("knowledge_base_search", ATLAS, "Lookup KB or FAQ"),
    ], ["decide"], emoji="📚", description="Search knowledge base"),
    Stage("decide", "DECIDE", NON_DETERMINISTIC, [
        StageAbility("solution_evaluation", COMMON, "Score potential solutions 1-100"),
        StageAbility("escalation_decision", ATLAS, "Assign to human agent if score <90"),
    ], ["update", "create"], emoji="⚖️", description="Evaluate solutions and decide on escalation",
        router=route_after_decide),
    Stage("update", "UPDATE", DETERMINISTIC, [
        StageAbility("update_ticket", ATLAS, "Modify status, fields, priority"),
        StageAbility("close_ticket", ATLAS, "Mark issue resolved", required=False),
    ], ["create"], emoji="🔄", description="Update ticket status"),
    Stage("create", "CREATE", DETERMINISTIC, [
        StageAbility("response_generation", COMMON, "Draft customer reply"),
    ], ["do"], emoji="✍️", description="Generate customer response"),
    Stage("do", "DO", DETERMINISTIC, [
        StageAbility("execute_api_calls", ATLAS, "Trigger CRM/order system actions"),
        StageAbility("trigger_notifications", ATLAS, "Notify customer"),
    ], ["complete"], emoji="🏃", description="Execute actions and notifications"),
    Stage("complete", "COMPLETE", DETERMINISTIC, [], [],
          emoji="✅", description="Output final payload"),
]


class StageCatalog:
    """Read-only ``id -> Stage`` lookup built once from an ordered stage list."""

    def __init__(self, stages: List[Stage]):
        self._stages: Dict[str, Stage] = {}
        for stage in stages:
            if stage.id in self._stages:
                raise ValueError(f"Duplicate stage id {stage.id}")
            self._stages[stage.id] = stage
        for stage in stages:
            for next_id in stage.next_stages:
                if next_id not in self._stages:
                    raise ValueError(f"Stage {stage.id} points to unknown stage {next_id}")

    def resolve(self, stage_id: str) -> Optional[Stage]:
        return self._stages.get(stage_id)

    @property
    def stage_ids(self) -> List[str]:
        return list(self._stages)

    def edges(self) -> List[Tuple[str, str]]:
        return [(stage.id, next_id) for stage in self for next_id in stage.next_stages]

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages.values())

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, stage_id) -> bool:
        return stage_id in self._stages


DEFAULT_CATALOG = StageCatalog(STAGE_CONFIG)
