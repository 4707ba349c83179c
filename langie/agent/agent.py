from typing import Any, Awaitable, Callable, Dict, Optional, Union
from loguru import logger
import asyncio
import uuid
from langie.agent.catalog import DEFAULT_CATALOG, INITIAL_STAGE, TERMINAL_STAGE, StageCatalog
from langie.agent.stage_def import Stage, NON_DETERMINISTIC, HUMAN, ATLAS, COMMON
from langie.config import settings
from langie.mcp.clients import MCPClient, build_clients
from langie.schemas import CustomerPayload, ExecutionLogEntry, WorkflowState

PayloadLike = Union[CustomerPayload, Dict[str, Any], None]


class UnknownStage(LookupError):
    pass


class UnknownBackend(LookupError):
    pass


class LangGraphAgent:
    """Runs one customer-support ticket through the stage graph.

    The agent owns a single :class:`WorkflowState`. ``execute_stage`` runs a
    stage's abilities against the registered backends and folds the results
    into the state; ``transition_to_next`` picks the following stage and
    executes it straight away. Ability failures are recorded in ``errors`` and
    the execution log instead of being raised, so a degraded run still moves
    forward.

    ``step`` and ``run_to_completion`` hold a per-agent lock, so concurrent
    callers driving the same agent are serialized stage by stage.

    When ``clients`` is omitted the agent builds its own backends with
    ``build_clients``; HTTP backends built that way are not closed by the
    agent. Callers that share or own backends close them with
    ``close_clients``.
    """

    def __init__(self, payload: PayloadLike = None, clients: Optional[Dict[str, MCPClient]] = None,
                 catalog: Optional[StageCatalog] = None, initial_stage: str = INITIAL_STAGE,
                 max_stage_history: Optional[int] = None):
        self.id = str(uuid.uuid4())
        self.name = "Langie - Customer Support Agent"
        self.description = "A structured and logical Lang Graph Agent for customer support workflows"
        self.catalog = DEFAULT_CATALOG if catalog is None else catalog
        if initial_stage not in self.catalog:
            raise UnknownStage(f"Stage {initial_stage} not found")
        self.initial_stage = initial_stage
        self.mcp_clients: Dict[str, MCPClient] = build_clients() if clients is None else dict(clients)
        self.max_stage_history = settings.MAX_STAGE_HISTORY if max_stage_history is None else max_stage_history
        # stage-specific orchestration for non-deterministic stages
        self._protocols: Dict[str, Callable[[Stage], Awaitable[None]]] = {"decide": self._run_decide}
        self._lock = asyncio.Lock()
        self.state = self._new_state(payload)

    def _new_state(self, payload: PayloadLike) -> WorkflowState:
        if isinstance(payload, CustomerPayload):
            payload = payload.model_copy(deep=True)
        else:
            payload = CustomerPayload(**{k: v for k, v in (payload or {}).items() if v is not None})
        self._stage_pending = True
        return WorkflowState(
            payload=payload,
            current_stage=self.initial_stage,
            stage_history=[self.initial_stage],
        )

    def _log(self, action: str, ability: str, server: str, status: str,
             result: Optional[Dict[str, Any]] = None, error: Optional[str] = None):
        self.state.execution_log.append(ExecutionLogEntry(
            stage=self.state.current_stage,
            action=action,
            ability=ability,
            server=server,
            status=status,
            result=result,
            error=error,
        ))

    async def execute_stage(self, stage_id: str) -> None:
        stage = self.catalog.resolve(stage_id)
        if stage is None:
            raise UnknownStage(f"Stage {stage_id} not found")

        self.state.current_stage = stage_id
        self._stage_pending = False
        if stage_id not in self.state.stage_history:
            self.state.stage_history.append(stage_id)

        logger.info("stage: {} {} mode={}", stage.emoji, stage.name, stage.mode)

        try:
            if stage_id == INITIAL_STAGE:
                self._log("stage_execution", "accept_payload", COMMON, "success",
                          {"message": "Payload accepted successfully", "payload": self.state.payload.model_dump()})
                return
            if stage_id == TERMINAL_STAGE:
                self._log("stage_execution", "output_payload", COMMON, "success",
                          {"message": "Workflow completed", "final_payload": self.state.payload.model_dump()})
                return

            if stage.mode == NON_DETERMINISTIC and stage_id in self._protocols:
                await self._protocols[stage_id](stage)
            else:
                if stage.mode == HUMAN:
                    self.state.human_input_required = True
                for ability in stage.abilities:
                    await self.execute_ability(ability.name, ability.mcp, self.state.payload.model_dump())
        except Exception as e:
            message = str(e) or type(e).__name__
            self.state.errors.append(f"Error in stage {stage_id}: {message}")
            self._log("stage_execution", "error", COMMON, "error", None, message)
            logger.error("Error in stage {}: {}", stage_id, message)

    async def execute_ability(self, name: str, backend_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        client = self.mcp_clients.get(backend_id)
        if client is None:
            raise UnknownBackend(f"MCP Client {backend_id} not found")

        self._log("ability_execution", name, backend_id, "pending")
        logger.debug("-> ability {} via {}", name, backend_id)

        try:
            result = await client.execute(name, params)
        except Exception as e:
            self._log("ability_execution", name, backend_id, "error", None, str(e) or type(e).__name__)
            raise

        self._log("ability_execution", name, backend_id, "success", result)
        self.state.abilities_executed.append(name)
        self.state.state_variables[name] = result
        return result

    async def _run_decide(self, stage: Stage) -> None:
        # score first, then let the escalation backend decide on that score
        evaluation = await self.execute_ability("solution_evaluation", COMMON, self.state.payload.model_dump())
        score = ((evaluation or {}).get("best_solution") or {}).get("score") or 0

        escalation = await self.execute_ability(
            "escalation_decision", ATLAS, {**self.state.payload.model_dump(), "score": score})

        if (escalation or {}).get("escalate"):
            self.state.escalated = True
            self.state.state_variables["escalation_reason"] = escalation.get("reason")
            self._log("decision_reasoning", "escalation_logic", ATLAS, "success", {
                "reason": f"Solution score = {score} < 90 → escalated",
                "decision": "escalate",
            })
        else:
            self._log("decision_reasoning", "escalation_logic", ATLAS, "success", {
                "reason": f"Solution score = {score} >= 90 → auto-resolve",
                "decision": "resolve",
            })

    async def transition_to_next(self) -> None:
        current = self.get_current_stage()
        if current is None or current.is_terminal:
            logger.info("Workflow completed or no next stages available")
            return

        next_id = current.router(self.state) if current.router else current.next_stages[0]
        logger.info("Transitioning from {} to {}", current.name, next_id.upper())
        await self.execute_stage(next_id)

    def get_current_stage(self) -> Optional[Stage]:
        return self.catalog.resolve(self.state.current_stage)

    @property
    def is_complete(self) -> bool:
        stage = self.get_current_stage()
        return self.state.current_stage == TERMINAL_STAGE or (stage is not None and stage.is_terminal)

    def reset(self, payload: PayloadLike = None) -> None:
        self.state = self._new_state(payload)

    async def step(self) -> None:
        """Advance one stage.

        A freshly created or reset run executes its initial stage first; after
        that every step is a ``transition_to_next``, which executes the stage
        it enters.
        """
        async with self._lock:
            await self._step()

    async def _step(self) -> None:
        if self._stage_pending:
            await self.execute_stage(self.state.current_stage)
            return

        current = self.get_current_stage()
        if self.state.human_input_required and current is not None and current.mode == HUMAN:
            # no real human channel: treat the question as answered
            self.state.human_input_required = False
            logger.info("Simulating human answer for ticket {}", self.state.payload.ticket_id)
        await self.transition_to_next()

    async def run_to_completion(self) -> WorkflowState:
        async with self._lock:
            logger.info("Starting complete workflow execution for ticket {}", self.state.payload.ticket_id)
            steps = 0
            while not self.is_complete:
                await self._step()

                steps += 1
                if len(self.state.stage_history) > self.max_stage_history or steps > self.max_stage_history:
                    logger.warning("Maximum stage execution limit reached ({})", self.max_stage_history)
                    break

            logger.info("Workflow execution finished at stage {}", self.state.current_stage)
            return self.state

    async def run(self, input_payload: PayloadLike = None) -> WorkflowState:
        if input_payload is not None:
            self.reset(input_payload)
        return await self.run_to_completion()

    def final_output(self) -> Dict[str, Any]:
        state = self.state
        response = state.state_variables.get("response_generation") or {}
        return {
            "ticket_id": state.payload.ticket_id,
            "status": "Escalated" if state.escalated else "Resolved",
            "escalated": state.escalated,
            "priority": state.payload.priority,
            "customer_name": state.payload.customer_name,
            "email": state.payload.email,
            "query": state.payload.query,
            "final_response": response.get("response") or "Processing complete",
            "execution_time": state.payload.created_at,
            "stages_executed": len(state.stage_history),
            "abilities_count": len(state.abilities_executed),
        }
