"""软删除忽略表配置"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import Table


@dataclass(frozen=True)
class IgnoredTable:
    """不参与软删除过滤的表

    使用示例:
        from ycascade.orm.orm_extensions import IgnoredTable, activate_soft_delete_hook

        activate_soft_delete_hook(ignored_tables=[IgnoredTable(name="audit_log")])
    """
    name: str
    table_schema: Optional[str] = None

    def match_name(self, table: Table) -> bool:
        """表名和 schema 都相同才算匹配"""
        return self.name == table.name and self.table_schema == table.schema

    @classmethod
    def from_names(cls, names: Iterable[str]) -> List["IgnoredTable"]:
        """从 "schema.table" 或 "table" 形式的名称列表创建"""
        result = []
        for name in names:
            schema, _, table_name = name.rpartition(".")
            result.append(cls(name=table_name, table_schema=schema or None))
        return result
