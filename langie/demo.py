"""
Demo run of the Langie customer-support agent.

Runs one sample ticket through the 11-stage graph against the simulated
COMMON and ATLAS backends (or the MCP servers configured in the environment)
and prints the final output, the execution log and the ability history.

How to run:
    python -m langie.demo [billing|technical|urgent]
"""

import asyncio
import json
import sys

from langie.agent.agent import LangGraphAgent
from langie.mcp.clients import build_clients, close_clients
from langie.samples import SAMPLE_SCENARIOS, get_sample
from langie.utils import configure_logging


async def main(scenario: str = "billing") -> LangGraphAgent:
    clients = build_clients()
    try:
        agent = LangGraphAgent(get_sample(scenario), clients=clients)
        await agent.run_to_completion()
    finally:
        await close_clients(clients)
    return agent


def cli():
    scenario = sys.argv[1] if len(sys.argv) > 1 else "billing"
    if scenario not in SAMPLE_SCENARIOS:
        print(f"unknown scenario {scenario!r}, pick one of: {', '.join(SAMPLE_SCENARIOS)}")
        sys.exit(2)

    configure_logging()
    print("\n=== Lang Graph Agent Demo Run ===\n")
    agent = asyncio.run(main(scenario))
    state = agent.state

    print("\n=== Final Structured Payload (JSON) ===")
    print(json.dumps(agent.final_output(), indent=2))
    print("\n=== Stage History ===")
    print(" -> ".join(s.upper() for s in state.stage_history))
    print("\n=== Execution Logs ===")
    for entry in state.execution_log:
        line = f"{entry.timestamp} | {entry.stage:<9} | {entry.action:<18} | {entry.ability} via {entry.server} -> {entry.status}"
        if entry.error:
            line += f" ({entry.error})"
        print(line)
    print("\n=== History of Abilities Called (summary) ===")
    for name in state.abilities_executed:
        print(f"- {name}")
    if state.errors:
        print("\n=== Errors ===")
        for err in state.errors:
            print(f"- {err}")


if __name__ == "__main__":
    cli()
