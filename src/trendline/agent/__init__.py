"""Service wiring: component construction, periodic jobs, shutdown.

Usage:
    from trendline.agent import agent_lifespan
    async with agent_lifespan(settings, shutdown_event) as state:
        ...
"""

from trendline.agent.lifespan import AgentState, agent_lifespan

__all__ = ["AgentState", "agent_lifespan"]
