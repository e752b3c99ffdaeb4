"""测试辅助工具模块"""

from .sql_helpers import count_statements

__all__ = [
    'count_statements',
]
