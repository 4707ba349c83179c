import uvicorn
from fastapi import FastAPI, HTTPException
from typing import Dict, Optional
from langie.config import settings
from langie.utils import configure_logging
from langie.schemas import (
    AgentRunRequest, AgentRunResponse, AbilityView, CatalogView, InputPayload, SessionView, StageView,
)
from langie.agent.agent import LangGraphAgent
from langie.agent.catalog import DEFAULT_CATALOG, INITIAL_STAGE
from langie.mcp.clients import MCPClient, build_clients, close_clients
from langie.samples import SAMPLE_SCENARIOS
from loguru import logger


class SessionStore:
    """In-memory agent sessions, keyed by agent id. Lost on restart."""

    def __init__(self):
        self._agents: Dict[str, LangGraphAgent] = {}

    def add(self, agent: LangGraphAgent) -> LangGraphAgent:
        self._agents[agent.id] = agent
        return agent

    def get(self, agent_id: str) -> LangGraphAgent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise HTTPException(status_code=404, detail=f"Workflow {agent_id} not found")
        return agent

    def remove(self, agent_id: str) -> None:
        self.get(agent_id)
        del self._agents[agent_id]

    def __len__(self):
        return len(self._agents)


def _session_view(agent: LangGraphAgent) -> SessionView:
    return SessionView(
        agent_id=agent.id,
        current_stage=agent.state.current_stage,
        is_complete=agent.is_complete,
        state=agent.state,
    )


def _catalog_view() -> CatalogView:
    stages = [
        StageView(
            id=s.id, name=s.name, emoji=s.emoji, description=s.description, mode=s.mode,
            abilities=[AbilityView(name=a.name, mcp=a.mcp, description=a.description, required=a.required)
                       for a in s.abilities],
            next_stages=list(s.next_stages),
        )
        for s in DEFAULT_CATALOG
    ]
    return CatalogView(initial_stage=INITIAL_STAGE, stages=stages, edges=[list(e) for e in DEFAULT_CATALOG.edges()])


def create_app(clients: Optional[Dict[str, MCPClient]] = None) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)
    sessions = SessionStore()
    backends = build_clients() if clients is None else clients
    app.state.sessions = sessions

    @app.on_event("shutdown")
    async def shutdown_event():
        await close_clients(backends)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": settings.APP_NAME, "sessions": len(sessions)}

    @app.get("/stages", response_model=CatalogView)
    async def stages():
        return _catalog_view()

    @app.get("/samples")
    async def samples():
        return SAMPLE_SCENARIOS

    @app.post("/run-agent", response_model=AgentRunResponse)
    async def run_agent(req: AgentRunRequest):
        try:
            agent = LangGraphAgent(req.payload.model_dump(exclude_none=True), clients=backends)
            state = await agent.run_to_completion()
            return AgentRunResponse(state=state, final_output=agent.final_output())
        except Exception as e:
            logger.exception("Agent error")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/workflows", response_model=SessionView, status_code=201)
    async def create_workflow(payload: InputPayload):
        agent = sessions.add(LangGraphAgent(payload.model_dump(exclude_none=True), clients=backends))
        logger.info("Workflow {} created for ticket {}", agent.id, agent.state.payload.ticket_id)
        return _session_view(agent)

    @app.get("/workflows/{agent_id}", response_model=SessionView)
    async def get_workflow(agent_id: str):
        return _session_view(sessions.get(agent_id))

    @app.post("/workflows/{agent_id}/step", response_model=SessionView)
    async def step_workflow(agent_id: str):
        agent = sessions.get(agent_id)
        try:
            await agent.step()
        except Exception as e:
            logger.exception("Step error")
            raise HTTPException(status_code=500, detail=str(e))
        return _session_view(agent)

    @app.post("/workflows/{agent_id}/run", response_model=SessionView)
    async def run_workflow(agent_id: str):
        agent = sessions.get(agent_id)
        try:
            await agent.run_to_completion()
        except Exception as e:
            logger.exception("Agent error")
            raise HTTPException(status_code=500, detail=str(e))
        return _session_view(agent)

    @app.get("/workflows/{agent_id}/output")
    async def workflow_output(agent_id: str):
        return sessions.get(agent_id).final_output()

    @app.post("/workflows/{agent_id}/reset", response_model=SessionView)
    async def reset_workflow(agent_id: str):
        agent = sessions.get(agent_id)
        agent.reset()
        return _session_view(agent)

    @app.delete("/workflows/{agent_id}", status_code=204)
    async def delete_workflow(agent_id: str):
        sessions.remove(agent_id)

    return app


configure_logging()
app = create_app()

if __name__ == "__main__":
    uvicorn.run("langie.main:app", host=settings.HOST, port=settings.PORT, reload=False, log_config=None)
