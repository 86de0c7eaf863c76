"""配置模块：运行时配置、业务种子配置与日志配置。"""
from .settings import Settings, settings

__all__ = ["Settings", "settings"]
