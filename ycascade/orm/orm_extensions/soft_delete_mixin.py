"""软删除Mixin类生成器"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Type, TYPE_CHECKING

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql.type_api import TypeEngine

from .soft_delete_hook import activate_soft_delete_hook
from .soft_delete_ignored_table import IgnoredTable


def generate_soft_delete_mixin_class(
    deleted_field_name: str = "deleted_at",
    ignored_tables: List[IgnoredTable] = None,
    class_name: str = "_SoftDeleteMixin",
    deleted_field_type: Optional[TypeEngine] = DateTime(timezone=False),
    disable_soft_delete_filtering_option_name: str = "include_deleted",
    activate_hook: bool = True,
) -> Type:
    """生成软删除Mixin类

    生成的 Mixin 提供:
    - 软删除字段（deleted_field_type 为 None 时不生成，使用模型自己的字段）
    - __soft_delete_field__，级联软删除据此识别软删除字段
    - soft_delete(value=None) / undelete() 方法和 is_deleted 属性

    Args:
        deleted_field_name: 软删除字段名
        ignored_tables: 不做软删除过滤的表
        class_name: 生成的类名
        deleted_field_type: 软删除字段类型
        disable_soft_delete_filtering_option_name: 关闭过滤的 execution_option 名称
        activate_hook: 是否立即激活软删除钩子

    使用示例:
        SoftDeleteMixin = generate_soft_delete_mixin_class()

        class Tag(SoftDeleteMixin, Base):
            __tablename__ = "tag"
            id = Column(Integer, primary_key=True)

        tag.soft_delete()
        session.commit()
    """
    class_attributes = {"__soft_delete_field__": deleted_field_name}

    if deleted_field_type is not None:
        def deleted_column(cls):
            return Column(deleted_field_name, deleted_field_type, nullable=True)

        class_attributes[deleted_field_name] = declared_attr(deleted_column)

    def soft_delete(_self, value: Optional[datetime] = None):
        """软删除当前对象（不触发级联）"""
        from ..cascade.executor import get_cascade_executor
        from ..cascade.timestamp import fresh_timestamp
        coordinator = get_cascade_executor().coordinator
        setattr(_self, deleted_field_name, value or fresh_timestamp(type(_self), coordinator))

    def undelete(_self):
        """恢复软删除的对象"""
        setattr(_self, deleted_field_name, None)

    def is_deleted(_self) -> bool:
        return getattr(_self, deleted_field_name) is not None

    class_attributes["soft_delete"] = soft_delete
    class_attributes["undelete"] = undelete
    class_attributes["is_deleted"] = property(is_deleted)

    if activate_hook:
        activate_soft_delete_hook(
            deleted_field_name,
            disable_soft_delete_filtering_option_name,
            ignored_tables or [],
        )

    return type(class_name, tuple(), class_attributes)


# 只提供方法，不生成字段，也不在导入时激活钩子
_SimpleSoftDeleteMixinBase = generate_soft_delete_mixin_class(
    class_name="_SimpleSoftDeleteMixinBase",
    deleted_field_type=None,
    activate_hook=False,
)


class SimpleSoftDeleteMixin(_SimpleSoftDeleteMixinBase):
    """简单的软删除Mixin

    用于已自行定义 deleted_at 字段的模型:

        class Tag(SimpleSoftDeleteMixin, Base):
            __tablename__ = "tag"
            id = Column(Integer, primary_key=True)
            deleted_at = Column(DateTime, nullable=True)

        tag.soft_delete()
        tag.undelete()
    """

    if TYPE_CHECKING:
        deleted_at: Optional[datetime]

        def soft_delete(self, value: Optional[datetime] = None) -> None: ...

        def undelete(self) -> None: ...

        @property
        def is_deleted(self) -> bool: ...
