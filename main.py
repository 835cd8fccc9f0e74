"""Main entry point.

启动 RPC 网关。
加载 modules 下的所有模块，合并服务定义并注册处理函数。
"""

import asyncio

from gateway import ServerBuilder, ServerConfig
from modules import collect_service_definitions, load_modules


def main() -> None:
    """主函数."""
    loaded = load_modules()

    builder = ServerBuilder(
        ServerConfig(
            service_definition=collect_service_definitions(loaded),
            host="127.0.0.1",
            port=3000,
            endpoint="/messages",
            log_level="debug",
        )
    ).add_console_logger("debug")
    for module in loaded:
        module.setup(builder)

    server = builder.build()
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
