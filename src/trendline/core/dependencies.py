"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from trendline.agent import AgentState
from trendline.config import Settings, get_settings
from trendline.ledger.client import LedgerClient
from trendline.processing.trend.orchestrator import TrendOrchestrator
from trendline.storage.database import Database, get_database

SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_db() -> Database:
    """Get database dependency."""
    return get_database()


async def get_agent_state(request: Request) -> AgentState:
    """Get AgentState from app.state (set during lifespan)."""
    return request.app.state.agent  # type: ignore[no-any-return]


async def get_orchestrator(state: AgentState = Depends(get_agent_state)) -> TrendOrchestrator:
    return state.orchestrator


async def get_ledger(state: AgentState = Depends(get_agent_state)) -> LedgerClient:
    return state.ledger


# Annotated dependencies for use in route handlers
DbDep = Annotated[Database, Depends(get_db)]
AgentStateDep = Annotated[AgentState, Depends(get_agent_state)]
OrchestratorDep = Annotated[TrendOrchestrator, Depends(get_orchestrator)]
LedgerDep = Annotated[LedgerClient, Depends(get_ledger)]
