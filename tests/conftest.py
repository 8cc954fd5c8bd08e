"""Shared fixtures."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fakes import FakeTransport

from notionchat.protocols.mcp.client import MCPClient


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
async def client(fake_transport: FakeTransport):
    """A connected MCPClient whose transport is a FakeTransport."""
    with patch.object(MCPClient, "_create_transport", return_value=fake_transport):
        mcp = MCPClient(request_timeout=1.0)
        await mcp.connect()
        yield mcp
        await mcp.close()
