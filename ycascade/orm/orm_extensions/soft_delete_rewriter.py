"""SQL语句重写器 - 软删除过滤"""

from __future__ import annotations

from typing import List, TypeVar, Union

from sqlalchemy import Table
from sqlalchemy.orm import FromStatement
from sqlalchemy.orm.util import _ORMJoin
from sqlalchemy.sql import Alias, CompoundSelect, Delete, Executable, Join, Select, Subquery, Update

from .soft_delete_ignored_table import IgnoredTable

Statement = TypeVar('Statement', bound=Union[Select, FromStatement, CompoundSelect, Executable])


class SoftDeleteRewriter:
    """SQL语句重写器

    为带软删除字段的表追加 "deleted_at IS NULL" 条件：
    - SELECT（含 JOIN、子查询、UNION、表别名）
    - UPDATE / DELETE（已软删除的行不再被批量修改）

    语句设置了 include_deleted 执行选项时不做处理:
        session.execute(select(Order).execution_options(include_deleted=True))
    """

    def __init__(
            self,
            deleted_field_name: str = "deleted_at",
            disable_soft_delete_option_name: str = "include_deleted",
            ignored_tables: List[IgnoredTable] = None,
    ):
        self.ignored_tables = ignored_tables or []
        self.deleted_field_name = deleted_field_name
        self.disable_soft_delete_option_name = disable_soft_delete_option_name

    def is_disabled(self, stmt: Executable) -> bool:
        return bool(stmt.get_execution_options().get(self.disable_soft_delete_option_name))

    def is_ignored(self, table: Table) -> bool:
        return any(ignored.match_name(table) for ignored in self.ignored_tables)

    def rewrite_statement(self, stmt: Statement) -> Statement:
        """重写SQL语句，不支持的语句类型原样返回"""
        if isinstance(stmt, Select):
            return self.rewrite_select(stmt)

        if isinstance(stmt, (Update, Delete)):
            return self.rewrite_dml(stmt)

        if isinstance(stmt, CompoundSelect):
            return self.rewrite_compound_select(stmt)

        if isinstance(stmt, FromStatement) and isinstance(stmt.element, Select):
            stmt.element = self.rewrite_select(stmt.element)

        return stmt

    def rewrite_select(self, stmt: Select) -> Select:
        if self.is_disabled(stmt):
            return stmt

        for from_obj in stmt.get_final_froms():
            stmt = self._analyze_from(stmt, from_obj)
        return stmt

    def rewrite_compound_select(self, stmt: CompoundSelect) -> CompoundSelect:
        """重写复合SELECT语句（UNION等）"""
        for i in range(len(stmt.selects)):
            stmt.selects[i] = self.rewrite_select(stmt.selects[i])
        return stmt

    def rewrite_dml(self, stmt: Union[Update, Delete]) -> Union[Update, Delete]:
        """重写UPDATE / DELETE语句"""
        if self.is_disabled(stmt):
            return stmt

        table = stmt.table
        if isinstance(table, Table) and self.is_ignored(table):
            return stmt

        column_obj = table.columns.get(self.deleted_field_name)
        if column_obj is None:
            return stmt
        return stmt.where(column_obj.is_(None))

    def _rewrite_element(self, subquery: Subquery) -> None:
        if isinstance(subquery.element, CompoundSelect):
            subquery.element = self.rewrite_compound_select(subquery.element)
        elif isinstance(subquery.element, Select):
            subquery.element = self.rewrite_select(subquery.element)

    def _rewrite_from_join(self, stmt: Select, join_obj: Union[_ORMJoin, Join]) -> Select:
        for side in (join_obj.left, join_obj.right):
            stmt = self._analyze_from(stmt, side)
        return stmt

    def _analyze_from(self, stmt: Select, from_obj) -> Select:
        if isinstance(from_obj, Table):
            return self._rewrite_from_table(stmt, from_obj, from_obj)

        if isinstance(from_obj, (_ORMJoin, Join)):
            return self._rewrite_from_join(stmt, from_obj)

        if isinstance(from_obj, Subquery):
            self._rewrite_element(from_obj)
            return stmt

        if isinstance(from_obj, Alias):
            if isinstance(from_obj.element, Table):
                return self._rewrite_from_table(stmt, from_obj, from_obj.element)
            if isinstance(from_obj.element, Subquery):
                self._rewrite_element(from_obj.element)
            return stmt

        # TableClause / TextClause 等原始SQL无法分析
        return stmt

    def _rewrite_from_table(self, stmt: Select, selectable, table: Table) -> Select:
        if self.is_ignored(table):
            return stmt

        column_obj = selectable.columns.get(self.deleted_field_name)
        if column_obj is None:
            return stmt
        return stmt.where(column_obj.is_(None))
