"""Unit tests for stage execution, ability dispatch and transitions."""

import pytest

from conftest import StubBackend, make_backends
from langie.agent.agent import LangGraphAgent, UnknownBackend, UnknownStage
from langie.agent.catalog import StageCatalog
from langie.agent.stage_def import ATLAS, COMMON, Stage, StageAbility
from langie.mcp.clients import MCPClientError


def _statuses(agent):
    return [(e.ability, e.status) for e in agent.state.execution_log]


def test_new_agent_state(agent, jane_payload):
    state = agent.state
    assert state.current_stage == "intake"
    assert state.stage_history == ["intake"]
    assert state.execution_log == []
    assert state.errors == []
    assert state.escalated is False
    assert state.human_input_required is False
    assert state.payload.customer_name == "Jane"
    assert state.payload.ticket_id.startswith("TKT-")
    assert state.payload.created_at
    assert agent.get_current_stage().name == "INTAKE"


def test_payload_keeps_given_ticket_id_and_extra_fields(backends):
    agent = LangGraphAgent({"ticket_id": "TKT-42", "query": "hi", "account": "ACC-1"}, clients=backends)
    assert agent.state.payload.ticket_id == "TKT-42"
    assert agent.state.payload.priority == "medium"
    assert agent.state.payload.model_dump()["account"] == "ACC-1"


def test_unknown_initial_stage_rejected(backends):
    with pytest.raises(UnknownStage):
        LangGraphAgent(clients=backends, initial_stage="nowhere")


@pytest.mark.asyncio
async def test_execute_unknown_stage_raises(agent):
    with pytest.raises(UnknownStage):
        await agent.execute_stage("nowhere")
    assert agent.state.current_stage == "intake"


@pytest.mark.asyncio
async def test_intake_and_complete_only_log_bookkeeping(agent, backends):
    await agent.execute_stage("intake")
    await agent.execute_stage("complete")

    assert _statuses(agent) == [("accept_payload", "success"), ("output_payload", "success")]
    assert agent.state.execution_log[0].stage == "intake"
    assert agent.state.execution_log[1].result["message"] == "Workflow completed"
    assert backends[ATLAS].calls == [] and backends[COMMON].calls == []
    assert agent.state.abilities_executed == []


@pytest.mark.asyncio
async def test_deterministic_stage_runs_abilities_in_order(agent, backends):
    await agent.execute_stage("prepare")

    assert agent.state.current_stage == "prepare"
    assert agent.state.abilities_executed == ["normalize_fields", "enrich_records", "add_flags_calculations"]
    assert _statuses(agent) == [
        ("normalize_fields", "pending"), ("normalize_fields", "success"),
        ("enrich_records", "pending"), ("enrich_records", "success"),
        ("add_flags_calculations", "pending"), ("add_flags_calculations", "success"),
    ]
    assert [e.server for e in agent.state.execution_log[::2]] == [COMMON, ATLAS, COMMON]
    assert backends[ATLAS].calls[0][1]["email"] == "jane@x.com"


@pytest.mark.asyncio
async def test_history_never_duplicates(agent):
    for stage_id in ("understand", "prepare", "understand", "prepare", "understand"):
        await agent.execute_stage(stage_id)

    assert agent.state.stage_history == ["intake", "understand", "prepare"]
    assert agent.state.current_stage == "understand"


@pytest.mark.asyncio
async def test_state_variables_last_write_wins():
    results = iter([{"n": 1}, {"n": 2}])
    common = StubBackend(COMMON, {"parse_request_text": lambda _p: next(results)})
    agent = LangGraphAgent(clients={COMMON: common, ATLAS: StubBackend(ATLAS)})

    await agent.execute_ability("parse_request_text", COMMON, {})
    await agent.execute_ability("parse_request_text", COMMON, {})

    assert agent.state.state_variables == {"parse_request_text": {"n": 2}}
    assert agent.state.abilities_executed == ["parse_request_text", "parse_request_text"]


@pytest.mark.asyncio
async def test_execute_ability_failure_leaves_results_untouched(agent, backends):
    backends[ATLAS].failures["extract_entities"] = MCPClientError("atlas down")

    with pytest.raises(MCPClientError):
        await agent.execute_ability("extract_entities", ATLAS, {})

    assert agent.state.abilities_executed == []
    assert "extract_entities" not in agent.state.state_variables
    last = agent.state.execution_log[-1]
    assert (last.ability, last.status, last.error) == ("extract_entities", "error", "atlas down")


@pytest.mark.asyncio
async def test_execute_ability_unknown_backend(agent):
    with pytest.raises(UnknownBackend):
        await agent.execute_ability("anything", "ELSEWHERE", {})
    assert agent.state.execution_log == []


@pytest.mark.asyncio
async def test_stage_failure_is_recorded_not_raised(jane_payload):
    backends = make_backends(atlas_failures={"extract_entities": RuntimeError("timeout")})
    agent = LangGraphAgent(jane_payload, clients=backends)

    await agent.execute_stage("understand")

    assert agent.state.errors == ["Error in stage understand: timeout"]
    assert agent.state.abilities_executed == ["parse_request_text"]
    assert _statuses(agent)[-2:] == [("extract_entities", "error"), ("error", "error")]
    assert agent.state.execution_log[-1].error == "timeout"


@pytest.mark.asyncio
async def test_failure_stops_remaining_abilities_of_stage(jane_payload):
    backends = make_backends(common_failures={"normalize_fields": RuntimeError("bad data")})
    agent = LangGraphAgent(jane_payload, clients=backends)

    await agent.execute_stage("prepare")

    assert backends[ATLAS].called("enrich_records") == 0
    assert agent.state.errors == ["Error in stage prepare: bad data"]


@pytest.mark.asyncio
async def test_unknown_backend_inside_stage_is_recorded(backends):
    catalog = StageCatalog([
        Stage("start", "START", "deterministic", [StageAbility("ping", "NOWHERE")], ["end"]),
        Stage("end", "END", "deterministic"),
    ])
    agent = LangGraphAgent(clients=backends, catalog=catalog, initial_stage="start")

    await agent.execute_stage("start")

    assert agent.state.errors == ["Error in stage start: MCP Client NOWHERE not found"]


@pytest.mark.asyncio
async def test_human_stage_sets_flag(agent, backends):
    await agent.execute_stage("ask")

    assert agent.state.human_input_required is True
    assert backends[ATLAS].called("clarify_question") == 1


@pytest.mark.asyncio
async def test_decide_auto_resolves_high_score(jane_payload):
    backends = make_backends(score=95)
    agent = LangGraphAgent(jane_payload, clients=backends)

    await agent.execute_stage("decide")

    assert agent.state.escalated is False
    assert "escalation_reason" not in agent.state.state_variables
    ability, params = backends[ATLAS].calls[0]
    assert ability == "escalation_decision"
    assert params["score"] == 95 and params["customer_name"] == "Jane"
    reasoning = agent.state.execution_log[-1]
    assert reasoning.action == "decision_reasoning"
    assert reasoning.result == {"reason": "Solution score = 95 >= 90 → auto-resolve", "decision": "resolve"}


@pytest.mark.asyncio
async def test_decide_escalates_low_score(jane_payload):
    agent = LangGraphAgent(jane_payload, clients=make_backends(score=72))

    await agent.execute_stage("decide")

    assert agent.state.escalated is True
    assert agent.state.state_variables["escalation_reason"] == "score=72"
    assert agent.state.execution_log[-1].result["reason"] == "Solution score = 72 < 90 → escalated"
    assert agent.state.abilities_executed == ["solution_evaluation", "escalation_decision"]


@pytest.mark.asyncio
async def test_decide_missing_score_counts_as_zero(jane_payload):
    backends = make_backends(score=None)
    agent = LangGraphAgent(jane_payload, clients=backends)

    await agent.execute_stage("decide")

    assert backends[ATLAS].calls[0][1]["score"] == 0
    assert agent.state.escalated is True


@pytest.mark.asyncio
async def test_decide_uses_backend_verdict_not_threshold(jane_payload):
    agent = LangGraphAgent(jane_payload, clients=make_backends(score=99, escalate=True))

    await agent.execute_stage("decide")

    assert agent.state.escalated is True


@pytest.mark.asyncio
async def test_transition_from_prepare_skips_ask_with_contact_details(agent, backends):
    await agent.execute_stage("prepare")
    await agent.transition_to_next()

    assert agent.state.current_stage == "retrieve"
    assert "ask" not in agent.state.stage_history
    assert backends[ATLAS].called("knowledge_base_search") == 1


@pytest.mark.asyncio
async def test_transition_from_prepare_asks_when_email_missing(backends):
    agent = LangGraphAgent({"customer_name": "Jane", "query": "help"}, clients=backends)
    await agent.execute_stage("prepare")
    await agent.transition_to_next()

    assert agent.state.current_stage == "ask"
    assert agent.state.human_input_required is True


@pytest.mark.asyncio
async def test_transition_from_decide_follows_escalated(agent):
    await agent.execute_stage("decide")
    agent.state.escalated = True
    await agent.transition_to_next()
    assert agent.state.current_stage == "update"

    await agent.execute_stage("decide")
    agent.state.escalated = False
    await agent.transition_to_next()
    assert agent.state.current_stage == "create"


@pytest.mark.asyncio
async def test_transition_defaults_to_first_candidate(agent):
    await agent.execute_stage("update")
    await agent.transition_to_next()
    assert agent.state.current_stage == "create"


@pytest.mark.asyncio
async def test_transition_at_terminal_is_noop(agent):
    await agent.execute_stage("complete")
    log_size = len(agent.state.execution_log)

    await agent.transition_to_next()

    assert agent.state.current_stage == "complete"
    assert len(agent.state.execution_log) == log_size
    assert agent.is_complete


@pytest.mark.asyncio
async def test_reset_discards_run(agent):
    await agent.run_to_completion()
    old_ticket = agent.state.payload.ticket_id

    agent.reset()

    state = agent.state
    assert state.stage_history == ["intake"]
    assert state.current_stage == "intake"
    assert state.execution_log == []
    assert state.errors == []
    assert state.abilities_executed == []
    assert state.state_variables == {}
    assert state.escalated is False
    assert state.payload.customer_name == ""
    assert state.payload.ticket_id != old_ticket


@pytest.mark.asyncio
async def test_final_output_summary(jane_payload):
    agent = LangGraphAgent(jane_payload, clients=make_backends(score=95))
    await agent.run_to_completion()

    out = agent.final_output()
    assert out["status"] == "Resolved"
    assert out["escalated"] is False
    assert out["final_response"] == "Dear Jane, all sorted."
    assert out["ticket_id"] == agent.state.payload.ticket_id
    assert out["stages_executed"] == len(agent.state.stage_history)
    assert out["abilities_count"] == len(agent.state.abilities_executed)


def test_final_output_before_run(agent):
    out = agent.final_output()
    assert out["final_response"] == "Processing complete"
    assert out["stages_executed"] == 1
