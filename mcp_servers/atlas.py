from langie.abilities.implementations import ATLAS_ABILITIES
from langie.mcp.server import create_mcp_app

# external-system abilities: CRM, knowledge base, ticketing, notifications
app = create_mcp_app("ATLAS", ATLAS_ABILITIES)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mcp_servers.atlas:app", host="0.0.0.0", port=8101, log_config=None)
