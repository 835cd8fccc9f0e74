"""Server configuration models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.logger import LogTransport, normalize_level

from .structs import ServiceDefinition

__all__ = ["LogTransport", "ServerConfig", "normalize_level"]


class ServerConfig(BaseModel):
    """网关服务器配置，构建后不可修改."""

    model_config = ConfigDict(frozen=True)

    service_definition: ServiceDefinition
    host: str = "127.0.0.1"
    port: int = Field(3000, ge=0, le=65535)
    endpoint: str = "/messages"
    log_level: str = "DEBUG"
    reply_timeout: float = Field(30.0, gt=0, description="等待回复的秒数")

    @field_validator("endpoint")
    @classmethod
    def _endpoint(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("endpoint must start with '/'")
        return v

    @field_validator("log_level")
    @classmethod
    def _log_level(cls, v: str) -> str:
        return normalize_level(v)
