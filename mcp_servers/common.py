from langie.abilities.implementations import COMMON_ABILITIES
from langie.mcp.server import create_mcp_app

# internal processing abilities, no external dependencies
app = create_mcp_app("COMMON", COMMON_ABILITIES)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mcp_servers.common:app", host="0.0.0.0", port=8102, log_config=None)
