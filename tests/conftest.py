"""Shared fixtures for the topology tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from topology.models import Agent, Link


NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


def make_agent(agent_id: str, ago: float | None = 0.0, **kw) -> Agent:
    """Agent whose last heartbeat was `ago` seconds before NOW (None = never)."""
    hb = None if ago is None else NOW - timedelta(seconds=ago)
    return Agent(id=agent_id, display_id=kw.pop("display_id", agent_id), last_heartbeat=hb, **kw)


def make_link(source: str, destination: str, **kw) -> Link:
    return Link(source_id=source, destination_id=destination, **kw)
