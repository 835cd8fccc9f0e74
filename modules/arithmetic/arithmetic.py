"""Arithmetic Module.

演示服务定义、函数注册和处理类注册。
"""

from loguru import logger


def add(first: float, second: float) -> float:
    logger.debug(f"Adding numbers: {first}, {second}")
    return first + second


def divide(dividend: float, divisor: float) -> float:
    # divisor 为 0 时抛出异常，演示错误处理
    return dividend / divisor


class Greeter:
    """以处理类的方式注册，方法名与声明一致."""

    def greet(self, name: str, punctuation: str = "!") -> str:
        return f"Hello, {name}{punctuation}"


SERVICE_DEFINITION = {
    "arithmetic": {
        "methods": {
            "add": {
                "description": "Adds 2 numbers and return their sum",
                "params": {
                    "first": {"type": "number", "order": 1},
                    "second": {"type": "number", "order": 2},
                },
                "returnInfo": {"type": "number"},
            },
            "divide": {
                "description": "Divides dividend by divisor",
                "params": {
                    "dividend": {"type": "number", "order": 1},
                    "divisor": {
                        "type": "number",
                        "order": 2,
                        "optional": True,
                        "defaultValue": 1,
                    },
                },
                "returnInfo": {"type": "number"},
            },
        },
    },
    "greeter": {
        "class": Greeter,
        "methods": {
            "greet": {
                "params": {
                    "name": {"type": "string", "order": 1},
                    "punctuation": {"type": "string", "order": 2, "optional": True},
                },
                "returnInfo": {"type": "string"},
            },
        },
    },
}


def setup(builder) -> None:
    """把本模块的处理函数注册到构建器."""
    builder.add_function(add).add_function(divide)
