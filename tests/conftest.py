"""Pytest hooks and fixtures."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp.test_utils import RawTestServer, TestClient
from loguru import logger

from gateway import ServerBuilder, ServerConfig


@pytest.fixture
def arithmetic_definition():
    return {
        "arithmetic": {
            "methods": {
                "add": {
                    "params": {
                        "first": {"type": "number", "order": 1},
                        "second": {"type": "number", "order": 2},
                    },
                    "returnInfo": {"type": "number"},
                }
            }
        }
    }


@pytest.fixture
def log_messages():
    """收集 loguru 输出的消息."""
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)


@pytest.fixture
def build_server():
    """build_server(definition, {name: fn}, **config) -> GatewayServer"""

    def _build(definition, functions=None, **config):
        builder = ServerBuilder(ServerConfig(service_definition=definition, **config))
        for name, fn in (functions or {}).items():
            builder.add_function(fn, name)
        return builder.build()

    return _build


@pytest_asyncio.fixture
async def client_for():
    """client_for(server) -> 已启动的 aiohttp TestClient."""
    started: list[tuple] = []

    async def _client(server):
        client = TestClient(RawTestServer(server.handle_request))
        await client.start_server()
        started.append((client, server))
        return client

    yield _client

    for client, server in started:
        await client.close()
        server.routes.close()
    await asyncio.sleep(0)
