from .config import LogTransport, ServerConfig
from .dispatcher import Dispatcher
from .errors import (
    BadRequest,
    ConfigurationError,
    CorrelationTimeout,
    GatewayError,
    HandlerFailure,
    MissingHandler,
    RoutingMiss,
)
from .registry import MethodRegistry
from .routes import RouteTable
from .server import GatewayServer, ServerBuilder
from .structs import ReplyEnvelope, RequestEnvelope, ServiceDefinition

__all__ = [
    "BadRequest",
    "ConfigurationError",
    "CorrelationTimeout",
    "Dispatcher",
    "GatewayError",
    "GatewayServer",
    "HandlerFailure",
    "LogTransport",
    "MethodRegistry",
    "MissingHandler",
    "ReplyEnvelope",
    "RequestEnvelope",
    "RouteTable",
    "RoutingMiss",
    "ServerBuilder",
    "ServerConfig",
    "ServiceDefinition",
]
