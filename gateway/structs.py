"""RPC 数据结构定义模块.

提供服务定义、请求信封和回复信封使用的 Pydantic 模型。
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)

from .errors import GatewayError

ParamType = Literal["string", "number", "boolean", "object"]
ArgValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, dict[str, Any], None]

NAME_PATTERN = re.compile(r"^[a-z]")

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
}


def _check_names(names) -> None:
    for name in names:
        if not NAME_PATTERN.match(name):
            raise ValueError(f"Name must start with a lower-case letter: {name!r}")


class ParamSpec(BaseModel):
    """方法参数声明.

    Attributes:
        order: 参数在位置参数列表中的序号，从 1 开始
        type: 参数类型
        optional: 请求中是否可以省略
        default_value: 省略时使用的默认值，类型必须与 type 一致
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    order: int = Field(..., description="参数序号")
    type: ParamType = Field(..., description="参数类型")
    optional: bool = Field(False, description="是否可选")
    default_value: Any = Field(None, alias="defaultValue", description="默认值")
    description: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return "default_value" in self.model_fields_set

    @model_validator(mode="after")
    def _check_default(self) -> "ParamSpec":
        if self.has_default and not _TYPE_CHECKS[self.type](self.default_value):
            raise ValueError(
                f"defaultValue {self.default_value!r} does not match type {self.type!r}"
            )
        return self


class ReturnInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ParamType
    description: Optional[str] = None


class MethodSpec(BaseModel):
    """方法声明."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    params: dict[str, ParamSpec] = Field(default_factory=dict)
    return_info: ReturnInfo = Field(..., alias="returnInfo")
    description: Optional[str] = None

    @field_validator("params")
    @classmethod
    def _param_names(cls, v: dict[str, ParamSpec]) -> dict[str, ParamSpec]:
        _check_names(v)
        return v

    def ordered_params(self) -> list[tuple[str, ParamSpec]]:
        """按 order 排序的参数列表."""
        return sorted(self.params.items(), key=lambda item: item[1].order)


class ServiceInfo(BaseModel):
    """服务声明.

    `class` 是可选的处理类，构建服务器时实例化一次，
    其中与声明方法同名的属性会以 `服务名:方法名` 注册。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    handler_class: Optional[type[Any]] = Field(None, alias="class")
    methods: dict[str, MethodSpec] = Field(default_factory=dict)

    @field_validator("methods")
    @classmethod
    def _method_names(cls, v: dict[str, MethodSpec]) -> dict[str, MethodSpec]:
        _check_names(v)
        return v


class ServiceDefinition(RootModel[dict[str, ServiceInfo]]):
    """服务定义：服务名 -> 服务声明，进程生命周期内不可变."""

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def _service_names(cls, v: dict[str, ServiceInfo]) -> dict[str, ServiceInfo]:
        for name in v:
            if not name.strip():
                raise ValueError("Service name must not be empty")
        return v

    def items(self):
        return self.root.items()

    def __getitem__(self, name: str) -> ServiceInfo:
        return self.root[name]

    def __len__(self) -> int:
        return len(self.root)


class RequestEnvelope(BaseModel):
    """请求信封.

    Example:
        >>> RequestEnvelope.model_validate_json(
        ...     '{"serviceName": "arithmetic", "methodName": "add", "args": {"first": 2}}'
        ... ).dispatch_key
        'arithmetic_add'
    """

    model_config = ConfigDict(populate_by_name=True)

    service_name: StrictStr = Field(..., alias="serviceName", min_length=1)
    method_name: StrictStr = Field(..., alias="methodName", min_length=1)
    args: dict[str, ArgValue] = Field(..., description="按参数名给出的调用参数")

    @property
    def dispatch_key(self) -> str:
        return dispatch_key(self.service_name, self.method_name)


class ResultData(BaseModel):
    type: ParamType
    value: Any


class JsonResult(BaseModel):
    data: ResultData


class ReplyEnvelope(BaseModel):
    """回复信封，每个被接受的请求恰好产生一个."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: int = Field(..., alias="statusCode")
    message: Optional[str] = None
    value: Optional[dict[str, Any]] = None

    @classmethod
    def success(cls, return_type: str, result: Any) -> "ReplyEnvelope":
        # mode="json" 会在结果无法序列化时抛出异常
        value = JsonResult(data=ResultData(type=return_type, value=result))
        return cls(status_code=200, value=value.model_dump(mode="json"))

    @classmethod
    def from_error(cls, error: GatewayError) -> "ReplyEnvelope":
        return cls(status_code=error.status_code, message=error.message)

    def body(self) -> str:
        """HTTP 响应体：有 message 时直接返回 message，否则返回 value 的 JSON."""
        if self.message is not None:
            return self.message
        return json.dumps(self.value)


@dataclass(frozen=True)
class DispatchEvent:
    """分发事件，经由总线从连接处理器发往路由表."""

    correlation_id: str
    args: dict[str, Any] = field(default_factory=dict)


def dispatch_key(service_name: str, method_name: str) -> str:
    return f"{service_name}_{method_name}"


def qualified_name(service_name: str, method_name: str) -> str:
    return f"{service_name}:{method_name}"
