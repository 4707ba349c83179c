from fastapi import FastAPI, HTTPException, Body
from typing import Any, Dict, Optional
from loguru import logger
from langie.abilities.implementations import Ability, UnknownAbility, run_ability


def create_mcp_app(name: str, abilities: Dict[str, Ability]) -> FastAPI:
    """Expose an ability registry as an MCP server: ``POST /{ability}``."""
    app = FastAPI(title=f"{name.title()} MCP")
    service = f"{name.lower()}-mcp"

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": service}

    @app.get("/abilities")
    async def list_abilities():
        return {"server": name, "available_abilities": list(abilities)}

    @app.post("/{ability}")
    async def call_ability(ability: str, params: Optional[Dict[str, Any]] = Body(None)):
        try:
            return await run_ability(name, abilities, ability, params or {})
        except UnknownAbility as e:
            logger.warning("{} rejected ability {}", name, ability)
            raise HTTPException(status_code=404, detail=str(e))

    return app
