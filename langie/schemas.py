from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any, List, Literal
from langie.utils import new_ticket_id, utc_now_iso

Priority = Literal["low", "medium", "high", "urgent"]
LogStatus = Literal["pending", "success", "error"]


class CustomerPayload(BaseModel):
    """Ticket data for one workflow run.

    Unknown keys are kept as extra fields, so abilities and callers can hang
    normalized values or extractions off the payload.
    """
    ticket_id: str = Field(default_factory=new_ticket_id)
    customer_name: str = ""
    email: str = ""
    query: str = ""
    priority: Priority = "medium"
    created_at: str = Field(default_factory=utc_now_iso)

    class Config:
        extra = "allow"


class ExecutionLogEntry(BaseModel):
    timestamp: str = Field(default_factory=utc_now_iso)
    stage: str
    action: str
    ability: str
    server: str
    status: LogStatus
    result: Optional[Any] = None
    error: Optional[str] = None


class WorkflowState(BaseModel):
    payload: CustomerPayload
    current_stage: str
    stage_history: List[str] = Field(default_factory=list)
    execution_log: List[ExecutionLogEntry] = Field(default_factory=list)
    abilities_executed: List[str] = Field(default_factory=list)
    # ability name -> latest result
    state_variables: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    human_input_required: bool = False
    escalated: bool = False


# --- API models ---

class InputPayload(BaseModel):
    customer_name: Optional[str] = Field(None)
    email: Optional[EmailStr] = Field(None)
    query: str = ""
    priority: Optional[Priority] = "medium"
    ticket_id: Optional[str] = None


class AgentRunRequest(BaseModel):
    payload: InputPayload


class AgentRunResponse(BaseModel):
    state: WorkflowState
    final_output: Dict[str, Any]


class SessionView(BaseModel):
    agent_id: str
    current_stage: str
    is_complete: bool
    state: WorkflowState


class AbilityView(BaseModel):
    name: str
    mcp: str
    description: str
    required: bool


class StageView(BaseModel):
    id: str
    name: str
    emoji: str
    description: str
    mode: str
    abilities: List[AbilityView]
    next_stages: List[str]


class CatalogView(BaseModel):
    initial_stage: str
    stages: List[StageView]
    edges: List[List[str]]
