"""Test configuration and fixtures."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from langie.abilities.implementations import ATLAS_ABILITIES, COMMON_ABILITIES
from langie.agent.agent import LangGraphAgent
from langie.agent.stage_def import ATLAS, COMMON
from langie.mcp.clients import LocalMCPClient

Response = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]]]


class StubBackend:
    """Ability backend double: canned responses, scripted failures, call record."""

    def __init__(self, name: str, responses: Optional[Dict[str, Response]] = None,
                 failures: Optional[Dict[str, Exception]] = None):
        self.name = name
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.available_abilities = list(self.responses)
        self.calls = []

    async def execute(self, ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((ability, params))
        if ability in self.failures:
            raise self.failures[ability]
        response = self.responses.get(ability, {"ok": True, "ability": ability})
        return response(params) if callable(response) else dict(response)

    def called(self, ability: str) -> int:
        return sum(1 for name, _ in self.calls if name == ability)


class SlowBackend(StubBackend):
    """Stub that sleeps inside every call and records start/end events."""

    def __init__(self, name: str, events: List[Tuple[str, str]], delay: float = 0.02, **kwargs):
        super().__init__(name, **kwargs)
        self.events = events
        self.delay = delay

    async def execute(self, ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self.events.append(("start", ability))
        await asyncio.sleep(self.delay)
        try:
            return await super().execute(ability, params)
        finally:
            self.events.append(("end", ability))


def overlapping_calls(events: List[Tuple[str, str]]) -> List[str]:
    """Abilities that started while another ability was still running."""
    running = None
    overlaps = []
    for kind, ability in events:
        if kind == "start":
            if running is not None:
                overlaps.append(ability)
            running = ability
        elif running == ability:
            running = None
    return overlaps


def make_backends(score: Optional[int] = 95, escalate: Optional[bool] = None,
                  atlas_failures=None, common_failures=None):
    """COMMON/ATLAS doubles; ``escalate=None`` applies the usual score < 90 rule."""
    evaluation = {"best_solution": {"id": "sol-1", "score": score}} if score is not None else {"solutions": []}

    def decide(params):
        flag = params["score"] < 90 if escalate is None else escalate
        return {"escalate": flag, "reason": f"score={params['score']}"}

    common = StubBackend(COMMON, {
        "solution_evaluation": evaluation,
        "response_generation": {"response": "Dear Jane, all sorted."},
    }, failures=common_failures)
    atlas = StubBackend(ATLAS, {"escalation_decision": decide}, failures=atlas_failures)
    return {COMMON: common, ATLAS: atlas}


def make_slow_backends(events: List[Tuple[str, str]], delay: float = 0.02):
    """COMMON/ATLAS doubles that share one event record and take ``delay`` per call."""
    return {COMMON: SlowBackend(COMMON, events, delay), ATLAS: SlowBackend(ATLAS, events, delay)}


@pytest.fixture
def jane_payload() -> Dict[str, Any]:
    return {
        "customer_name": "Jane",
        "email": "jane@x.com",
        "priority": "medium",
        "query": "I was charged twice this month, please refund the duplicate charge.",
    }


@pytest.fixture
def backends():
    return make_backends()


@pytest.fixture
def agent(jane_payload, backends) -> LangGraphAgent:
    return LangGraphAgent(jane_payload, clients=backends)


@pytest.fixture
def local_clients():
    """The simulated in-process backends, without latency."""
    return {
        ATLAS: LocalMCPClient(ATLAS, ATLAS_ABILITIES, latency=0),
        COMMON: LocalMCPClient(COMMON, COMMON_ABILITIES, latency=0),
    }
