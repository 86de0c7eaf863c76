"""数据库模块。

提供 ORM 模型、仓库与统一的 DatabaseManager 门面。
"""
from .connection import DatabaseConnection
from .manager import DatabaseManager

__all__ = ["DatabaseConnection", "DatabaseManager"]
