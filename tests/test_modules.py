import pytest

from gateway import ServerBuilder, ServerConfig
from modules import collect_service_definitions, load_modules


@pytest.fixture
def example_server():
    loaded = load_modules()
    builder = ServerBuilder(
        ServerConfig(service_definition=collect_service_definitions(loaded))
    )
    for module in loaded:
        module.setup(builder)
    return builder.build()


def test_load_modules_collects_definitions():
    loaded = load_modules()
    assert [m.__name__ for m in loaded] == ["modules.arithmetic"]
    assert set(collect_service_definitions(loaded)) == {"arithmetic", "greeter"}


def test_example_routes(example_server):
    assert sorted(example_server.routes.dispatch_keys()) == [
        "arithmetic_add",
        "arithmetic_divide",
        "greeter_greet",
    ]
    assert sorted(example_server.registry.names()) == ["add", "divide", "greeter:greet"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "service,method,args,status,value",
    [
        ("arithmetic", "add", {"first": 2, "second": 3}, 200, 5),
        ("arithmetic", "divide", {"dividend": 8}, 200, 8),
        ("arithmetic", "divide", {"dividend": 8, "divisor": 0}, 500, None),
        ("greeter", "greet", {"name": "Ada"}, 200, "Hello, Ada!"),
        ("greeter", "greet", {"name": "Ada", "punctuation": "?"}, 200, "Hello, Ada?"),
    ],
)
async def test_example_calls(example_server, client_for, service, method, args, status, value):
    client = await client_for(example_server)
    resp = await client.post(
        "/messages", json={"serviceName": service, "methodName": method, "args": args}
    )

    assert resp.status == status
    if status == 200:
        assert (await resp.json())["data"]["value"] == value
    else:
        assert await resp.text() == "Internal server error"
