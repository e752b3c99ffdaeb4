"""关系句柄

把模型上的一个 relationship 解析为统一的操作集合（计数、分页取主键、批量删除……），
遍历逻辑不需要关心关系的具体形态：

- DIRECT: 一对多 / 一对一 / 多对一，删除单位是关联模型本身
- THROUGH_PIVOT: 多对多（relationship 配置了 secondary），删除单位是中间表记录，
  是否继续级联由关联模型（related_class）决定

所有查询都只作用于未软删除的记录。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Table, delete, func, literal, select, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import RelationshipProperty, Session, object_session, with_parent
from sqlalchemy.orm.exc import DetachedInstanceError
from sqlalchemy.sql.elements import ColumnElement

from ..lifecycle import DeleteMode
from .config import get_cascade_settings, soft_delete_field
from .exceptions import InvalidCascadeConfiguration
from .timestamp import TimestampCoordinator, fresh_timestamp, timestamp_coordinator


class RelationshipKind(str, Enum):
    """关系形态"""

    DIRECT = "direct"
    THROUGH_PIVOT = "through_pivot"


def active_criterion(model_cls: type) -> Optional[ColumnElement]:
    """未软删除条件，模型没有软删除字段时返回 None"""
    mapper = sa_inspect(model_cls, raiseerr=False)
    field = soft_delete_field(model_cls)
    if mapper is None or field not in mapper.columns:
        return None
    return getattr(model_cls, field).is_(None)


def non_empty_criterion(model_cls: type, name: str) -> ColumnElement:
    """"relationship 中存在未删除记录" 的 EXISTS 条件"""
    attr = getattr(model_cls, name)
    prop = attr.property
    active = active_criterion(prop.mapper.class_)
    args = (active,) if active is not None else ()
    return attr.any(*args) if prop.uselist else attr.has(*args)


def _mapped_class_for_table(prop: RelationshipProperty, table: Table) -> Optional[type]:
    for mapper in prop.parent.registry.mappers:
        if mapper.local_table is table:
            return mapper.class_
    return None


class RelationshipHandle:
    """关系句柄基类"""

    kind: RelationshipKind

    # 删除单位对应的映射类（未映射的中间表为 None）
    target_class: Optional[type] = None

    def __init__(
        self,
        session: Session,
        entity: Any,
        name: str,
        prop: RelationshipProperty,
        coordinator: Optional[TimestampCoordinator] = None,
    ):
        self.session = session
        self.entity = entity
        self.name = name
        self.prop = prop
        self.coordinator = coordinator or timestamp_coordinator
        # 关系另一端的模型
        self.related_class: type = prop.mapper.class_

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {type(self.entity).__name__}.{self.name}>"

    @property
    def is_through(self) -> bool:
        return self.kind is RelationshipKind.THROUGH_PIVOT

    # ==================== 子类实现 ====================

    def _from_clause(self):
        raise NotImplementedError

    def _criteria(self) -> List[ColumnElement]:
        raise NotImplementedError

    def _key_column(self):
        raise NotImplementedError

    def fetch_all(self) -> List[Any]:
        raise NotImplementedError

    def load(self, keys: Sequence[Any]) -> List[Any]:
        raise NotImplementedError

    def bulk_delete(self, keys: Optional[Sequence[Any]], mode: DeleteMode) -> int:
        raise NotImplementedError

    # ==================== 通用操作 ====================

    def count(self) -> int:
        """关联记录数量"""
        stmt = select(func.count()).select_from(self._from_clause()).where(*self._criteria())
        return self.session.scalar(stmt) or 0

    def exists(self) -> bool:
        """是否存在关联记录（LIMIT 1 探测）"""
        return self.any_target()

    def any_target(self, *criterion: ColumnElement) -> bool:
        """删除单位中是否存在满足附加条件的记录"""
        stmt = (
            select(literal(True))
            .select_from(self._from_clause())
            .where(*self._criteria(), *criterion)
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def any_related(self, *criterion: ColumnElement) -> bool:
        """关联模型（related_class）中是否存在满足附加条件的记录"""
        return self.any_target(*criterion)

    def fetch_page(self, limit: int, after: Any = None) -> List[Any]:
        """按主键升序获取一页主键（键集分页）

        Args:
            limit: 每页数量
            after: 上一页最后一个主键，None 表示第一页
        """
        key = self._key_column()
        stmt = select(key).where(*self._criteria())
        if after is not None:
            stmt = stmt.where(key > after)
        stmt = stmt.order_by(key).limit(limit)
        return list(self.session.scalars(stmt))

    def fetch_keys(self) -> List[Any]:
        """按主键升序获取全部主键"""
        key = self._key_column()
        stmt = select(key).where(*self._criteria()).order_by(key)
        return list(self.session.scalars(stmt))

    def _expire_parent(self) -> None:
        # 批量语句绕过了 identity map，父对象上已加载的集合需要重新加载
        if self.entity in self.session:
            self.session.expire(self.entity, [self.name])


class DirectRelationshipHandle(RelationshipHandle):
    """直接关系：删除关联模型本身"""

    kind = RelationshipKind.DIRECT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.target_class = self.related_class

    def _from_clause(self):
        return self.target_class

    def _criteria(self) -> List[ColumnElement]:
        criteria = [with_parent(self.entity, self.prop.class_attribute)]
        active = active_criterion(self.target_class)
        if active is not None:
            criteria.append(active)
        return criteria

    def _key_column(self):
        mapper = self.prop.mapper
        if len(mapper.primary_key) != 1:
            raise InvalidCascadeConfiguration(
                self.target_class, "分批获取（chunked）要求关联模型使用单列主键"
            )
        return getattr(self.target_class, mapper.get_property_by_column(mapper.primary_key[0]).key)

    def fetch_all(self) -> List[Any]:
        stmt = (
            select(self.target_class)
            .where(*self._criteria())
            .order_by(*self.prop.mapper.primary_key)
        )
        return list(self.session.scalars(stmt))

    def load(self, keys: Sequence[Any]) -> List[Any]:
        key = self._key_column()
        stmt = select(self.target_class).where(key.in_(list(keys))).order_by(key)
        return list(self.session.scalars(stmt))

    def _soft_delete_values(self) -> Dict[str, datetime]:
        timestamp = fresh_timestamp(self.target_class, self.coordinator)
        values = {soft_delete_field(self.target_class): timestamp}
        if "updated_at" in self.prop.mapper.columns:
            values["updated_at"] = timestamp
        return values

    def bulk_delete(self, keys: Optional[Sequence[Any]], mode: DeleteMode) -> int:
        """批量删除

        Args:
            keys: 主键列表，None 表示整个关系集合
            mode: 删除模式；关联模型没有软删除字段时始终物理删除
        """
        if keys is None:
            criteria = self._criteria()
        else:
            criteria = [self._key_column().in_(list(keys))]
            active = active_criterion(self.target_class)
            if active is not None:
                criteria.append(active)

        if mode is DeleteMode.FORCE or active_criterion(self.target_class) is None:
            stmt = delete(self.target_class).where(*criteria)
        else:
            stmt = update(self.target_class).where(*criteria).values(self._soft_delete_values())

        result = self.session.execute(stmt.execution_options(synchronize_session="fetch"))
        self._expire_parent()
        return result.rowcount


class ThroughPivotRelationshipHandle(RelationshipHandle):
    """多对多关系：删除中间表记录，关联模型本身保留"""

    kind = RelationshipKind.THROUGH_PIVOT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pivot_table: Table = self.prop.secondary
        self.target_class = _mapped_class_for_table(self.prop, self.pivot_table)

    def _from_clause(self):
        return self.pivot_table

    def _pivot_soft_delete_column(self):
        if self.target_class is not None:
            field = soft_delete_field(self.target_class)
        else:
            field = get_cascade_settings().deleted_field_name
        return self.pivot_table.c.get(field)

    def _parent_criteria(self) -> List[ColumnElement]:
        parent_mapper = sa_inspect(self.entity).mapper
        criteria = []
        for parent_col, pivot_col in self.prop.synchronize_pairs:
            key = parent_mapper.get_property_by_column(parent_col).key
            criteria.append(pivot_col == getattr(self.entity, key))
        return criteria

    def _criteria(self) -> List[ColumnElement]:
        criteria = self._parent_criteria()
        deleted_col = self._pivot_soft_delete_column()
        if deleted_col is not None:
            criteria.append(deleted_col.is_(None))
        return criteria

    def any_related(self, *criterion: ColumnElement) -> bool:
        """经由未删除的中间表记录，关联模型中是否存在满足附加条件的记录"""
        join_criteria = [
            related_col == pivot_col
            for related_col, pivot_col in self.prop.secondary_synchronize_pairs
        ]
        active = active_criterion(self.related_class)
        if active is not None:
            join_criteria.append(active)
        stmt = (
            select(literal(True))
            .select_from(self.related_class)
            .where(*self._criteria(), *join_criteria, *criterion)
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def _key_column(self):
        pairs = self.prop.secondary_synchronize_pairs
        if len(pairs) != 1:
            raise InvalidCascadeConfiguration(
                type(self.entity), f"中间表 {self.pivot_table.name} 关联键不是单列，无法分批获取"
            )
        return pairs[0][1]

    def _require_pivot_class(self) -> type:
        if self.target_class is None:
            raise InvalidCascadeConfiguration(
                type(self.entity), f"中间表 {self.pivot_table.name} 没有映射类，无法加载中间表记录"
            )
        return self.target_class

    def fetch_all(self) -> List[Any]:
        pivot_cls = self._require_pivot_class()
        stmt = select(pivot_cls).where(*self._criteria()).order_by(self._key_column())
        return list(self.session.scalars(stmt))

    def load(self, keys: Sequence[Any]) -> List[Any]:
        pivot_cls = self._require_pivot_class()
        key = self._key_column()
        stmt = select(pivot_cls).where(*self._criteria(), key.in_(list(keys))).order_by(key)
        return list(self.session.scalars(stmt))

    def bulk_delete(self, keys: Optional[Sequence[Any]], mode: DeleteMode) -> int:
        """批量删除中间表记录

        中间表有软删除字段且为软删除模式时更新删除时间，否则物理删除。
        """
        criteria = self._criteria()
        if keys is not None:
            criteria.append(self._key_column().in_(list(keys)))

        deleted_col = self._pivot_soft_delete_column()
        if mode is DeleteMode.SOFT and deleted_col is not None:
            if self.target_class is not None:
                timestamp = fresh_timestamp(self.target_class, self.coordinator)
            else:
                timestamp = self.coordinator.current_or_now()
            stmt = update(self.pivot_table).where(*criteria).values({deleted_col.name: timestamp})
        else:
            stmt = delete(self.pivot_table).where(*criteria)

        result = self.session.execute(stmt)
        self._expire_parent()
        return result.rowcount


def resolve_relationship(
    entity: Any,
    name: str,
    session: Optional[Session] = None,
    coordinator: Optional[TimestampCoordinator] = None,
) -> RelationshipHandle:
    """把实体上的关系名解析为关系句柄

    Args:
        entity: 正在删除的实体
        name: relationship 名
        session: 执行语句的 Session，默认实体所在的 Session
        coordinator: 生成删除时间的协调器，默认全局协调器

    Raises:
        KeyError: name 不是 relationship（应先经过 CascadeValidator 校验）
        DetachedInstanceError: 实体不在任何 Session 中
    """
    prop = sa_inspect(type(entity)).relationships[name]
    session = session or object_session(entity)
    if session is None:
        raise DetachedInstanceError(f"{entity!r} 不在 Session 中，无法级联处理关系 '{name}'")

    if prop.secondary is not None:
        return ThroughPivotRelationshipHandle(session, entity, name, prop, coordinator)
    return DirectRelationshipHandle(session, entity, name, prop, coordinator)
