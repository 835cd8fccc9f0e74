import asyncio

import aiohttp
import pytest
from loguru import logger

from gateway import ConfigurationError, Dispatcher, ServerBuilder, ServerConfig


def add(first, second):
    return first + second


@pytest.fixture
def builder(arithmetic_definition):
    return ServerBuilder(ServerConfig(service_definition=arithmetic_definition))


def test_build_returns_server_with_frozen_registry(builder):
    server = builder.add_function(add).build()

    assert server.registry.lookup("add") is add
    assert server.routes.dispatch_keys() == ["arithmetic_add"]
    with pytest.raises(ConfigurationError):
        server.registry.register("other", add)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda b: b.add_function(add, "other"),
        lambda b: b.add_console_logger("info"),
        lambda b: b.add_file_logger("gateway.log", "info"),
        lambda b: b.add_http_logger("localhost", 8080, "warn"),
        lambda b: b.on_start(lambda: None),
        lambda b: b.on_shutdown(lambda: None),
        lambda b: b.build(),
    ],
)
def test_builder_rejects_changes_after_build(builder, mutate):
    builder.add_function(add).build()
    with pytest.raises(ConfigurationError):
        mutate(builder)


def test_builder_accepts_dict_config(arithmetic_definition):
    builder = ServerBuilder({"service_definition": arithmetic_definition, "endpoint": "/rpc"})
    assert builder.config.endpoint == "/rpc"
    assert builder.config.reply_timeout == 30.0


@pytest.mark.parametrize(
    "config",
    [
        {"endpoint": "messages"},
        {"reply_timeout": 0},
        {"log_level": "verbose"},
    ],
)
def test_builder_rejects_invalid_config(arithmetic_definition, config):
    with pytest.raises(ConfigurationError):
        ServerBuilder({"service_definition": arithmetic_definition, **config})


def test_builder_rejects_unknown_log_level(builder):
    with pytest.raises(ConfigurationError):
        builder.add_console_logger("loud")


def test_add_function_rejects_empty_name(builder):
    with pytest.raises(ConfigurationError):
        builder.add_function(add, "")


def test_method_decorator_registers_function(builder):
    @builder.method(name="add")
    def plus(a, b):
        return a + b

    server = builder.build()
    assert server.registry.lookup("add") is plus


def test_build_rejects_param_order_gap():
    definition = {
        "svc": {
            "methods": {
                "m": {
                    "params": {
                        "a": {"type": "number", "order": 1},
                        "b": {"type": "number", "order": 3},
                    },
                    "returnInfo": {"type": "number"},
                }
            }
        }
    }
    with pytest.raises(ConfigurationError):
        ServerBuilder(ServerConfig(service_definition=definition)).build()


def test_handler_class_methods_are_registered_by_qualified_name():
    class Clock:
        def now(self):
            return "noon"

    definition = {"clock": {"class": Clock, "methods": {"now": {"returnInfo": {"type": "string"}}}}}
    server = ServerBuilder(ServerConfig(service_definition=definition)).build()

    assert server.registry.names() == ["clock:now"]
    assert server.registry.resolve("clock", "now")() == "noon"


def test_handler_class_that_fails_to_instantiate():
    class Broken:
        def __init__(self):
            raise RuntimeError("no database")

    definition = {"broken": {"class": Broken, "methods": {"ping": {"returnInfo": {"type": "string"}}}}}
    with pytest.raises(ConfigurationError):
        ServerBuilder(ServerConfig(service_definition=definition)).build()


def test_servers_get_their_own_dispatcher_unless_given(arithmetic_definition):
    config = ServerConfig(service_definition=arithmetic_definition)
    shared = Dispatcher()

    first = ServerBuilder(config).build()
    second = ServerBuilder(config).build()
    third = ServerBuilder(config, dispatcher=shared).build()

    assert first.dispatcher is not second.dispatcher
    assert third.dispatcher is shared
    assert shared.has_subscribers("arithmetic_add")


@pytest.mark.asyncio
async def test_shutdown_runs_hooks_and_logs_failures(builder, log_messages):
    calls = []

    @builder.on_shutdown
    def failing():
        raise RuntimeError("disk full")

    @builder.on_shutdown
    async def cleanup():
        calls.append("cleanup")

    server = builder.build()
    await server.shutdown()

    assert calls == ["cleanup"]
    assert any("Error executing hook failing" in m for m in log_messages)


@pytest.mark.asyncio
async def test_start_serves_until_shutdown(arithmetic_definition):
    events = []
    # 端口 0 由系统分配
    builder = ServerBuilder(ServerConfig(service_definition=arithmetic_definition, port=0))
    builder.add_function(add)
    builder.on_start(lambda: events.append("start"))

    @builder.on_shutdown
    async def stop():
        events.append("shutdown")

    server = builder.build()
    task = asyncio.create_task(server.start())
    try:
        for _ in range(500):
            if server.runner is not None and server.runner.addresses:
                break
            await asyncio.sleep(0.01)
        assert server.is_running
        host, port = server.runner.addresses[0][:2]

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"http://{host}:{port}/messages",
                json={"serviceName": "arithmetic", "methodName": "add", "args": {"first": 4, "second": 5}},
            ) as resp:
                assert resp.status == 200
                assert (await resp.json())["data"]["value"] == 9
    finally:
        await server.shutdown()
        await asyncio.wait_for(task, 5)
        logger.remove()

    assert events == ["start", "shutdown"]
    assert not server.is_running


def test_builder_requires_service_definition():
    with pytest.raises(ConfigurationError):
        ServerBuilder({})


def test_handler_class_method_wins_over_bare_function():
    class Clock:
        def now(self):
            return "class"

    definition = {
        "clock": {"class": Clock, "methods": {"now": {"returnInfo": {"type": "string"}}}},
        "sundial": {"methods": {"now": {"returnInfo": {"type": "string"}}}},
    }
    builder = ServerBuilder(ServerConfig(service_definition=definition))
    builder.add_function(lambda: "bare", "now")
    server = builder.build()

    assert server.registry.resolve("clock", "now")() == "class"
    assert server.registry.resolve("sundial", "now")() == "bare"
