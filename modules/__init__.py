"""业务模块.

每个子包提供 `SERVICE_DEFINITION` 和 `setup(builder)`，
由 load_modules() 导入后合并进服务器配置。
"""

import importlib
from pathlib import Path
from types import ModuleType

from loguru import logger


def load_modules(modules_dir: Path = Path(__file__).parent) -> list[ModuleType]:
    """加载指定目录下的所有模块."""
    loaded = []
    for module_path in sorted(modules_dir.iterdir()):
        if module_path.is_dir() and (module_path / "__init__.py").exists():
            module_name = module_path.name
            logger.info(f"Loading module: {module_name}")
            loaded.append(importlib.import_module(f"modules.{module_name}"))
    return loaded


def collect_service_definitions(loaded: list[ModuleType]) -> dict:
    """合并各模块的服务定义."""
    definition: dict = {}
    for module in loaded:
        definition.update(getattr(module, "SERVICE_DEFINITION", {}))
    return definition
