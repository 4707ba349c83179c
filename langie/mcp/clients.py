import asyncio
import httpx
from typing import Dict, Any, List, Optional, Protocol, Sequence
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type
from langie.config import settings, Settings
from langie.abilities.implementations import (
    ATLAS_ABILITIES, COMMON_ABILITIES, Ability, UnknownAbility, run_ability,
)
from langie.agent.stage_def import ATLAS, COMMON
from loguru import logger


class MCPClientError(Exception):
    pass


class MCPClient(Protocol):
    """What the engine needs from an ability backend."""

    name: str
    available_abilities: List[str]

    async def execute(self, ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ...


class LocalMCPClient:
    """Runs abilities in-process against a name -> implementation registry."""

    def __init__(self, name: str, abilities: Dict[str, Ability], latency: Optional[float] = None):
        self.name = name
        self._abilities = abilities
        self.available_abilities = list(abilities)
        self.latency = settings.MCP_SIMULATED_LATENCY if latency is None else latency

    async def execute(self, ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("MCP local call server={} ability={}", self.name, ability)
        if self.latency:
            await asyncio.sleep(self.latency)
        try:
            return await run_ability(self.name, self._abilities, ability, dict(params))
        except UnknownAbility as e:
            raise MCPClientError(str(e)) from e


class BaseMCPClient:
    """Calls abilities on a remote MCP server: POST {base_url}/{ability}."""

    def __init__(self, name: str, base_url: str, timeout: int = 10,
                 available_abilities: Sequence[str] = (), transport: Optional[httpx.AsyncBaseTransport] = None):
        self.name = name
        self.base_url = str(base_url).rstrip("/")
        self.timeout = timeout
        self.available_abilities = list(available_abilities)
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def execute(self, ability: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self.call(ability, params)

    async def call(self, ability: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{ability}"

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.RETRY_ATTEMPTS),
            wait=wait_exponential(multiplier=1, min=settings.RETRY_WAIT_SECONDS, max=10),
            retry=retry_if_exception_type((httpx.TransportError, httpx.RequestError)),
            reraise=True
        ):
            with attempt:
                logger.debug("MCP call url={} ability={} attempt={}", url, ability, attempt.retry_state.attempt_number)
                resp = await self._client.post(url, json=payload)

                if resp.status_code == 404:
                    raise MCPClientError(f"Unknown {self.name} ability: {ability}")
                if resp.status_code >= 400:
                    raise MCPClientError(f"{self.name} server error {resp.status_code}")

                return resp.json()

        raise MCPClientError("Retries exhausted")

    async def aclose(self):
        await self._client.aclose()


class CommonMCPClient(BaseMCPClient):
    def __init__(self, base_url: str, timeout: int = 10, **kwargs):
        super().__init__(COMMON, base_url, timeout, available_abilities=list(COMMON_ABILITIES), **kwargs)


class AtlasMCPClient(BaseMCPClient):
    def __init__(self, base_url: str, timeout: int = 10, **kwargs):
        super().__init__(ATLAS, base_url, timeout, available_abilities=list(ATLAS_ABILITIES), **kwargs)


# Factory
def build_clients(cfg: Settings = settings) -> Dict[str, MCPClient]:
    clients: Dict[str, MCPClient] = {}
    if cfg.MCP_ATLAS_URL:
        clients[ATLAS] = AtlasMCPClient(cfg.MCP_ATLAS_URL, timeout=cfg.MCP_TIMEOUT_SECONDS)
    else:
        clients[ATLAS] = LocalMCPClient(ATLAS, ATLAS_ABILITIES, latency=cfg.MCP_SIMULATED_LATENCY)
    if cfg.MCP_COMMON_URL:
        clients[COMMON] = CommonMCPClient(cfg.MCP_COMMON_URL, timeout=cfg.MCP_TIMEOUT_SECONDS)
    else:
        clients[COMMON] = LocalMCPClient(COMMON, COMMON_ABILITIES, latency=cfg.MCP_SIMULATED_LATENCY)
    logger.info("MCP backends: {}", {name: type(c).__name__ for name, c in clients.items()})
    return clients


async def close_clients(clients: Dict[str, MCPClient]) -> None:
    """Close backends that hold connections; in-process backends have nothing to close."""
    for client in clients.values():
        close = getattr(client, "aclose", None)
        if close is not None:
            await close()
