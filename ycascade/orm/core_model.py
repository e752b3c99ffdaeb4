"""
ORM基础模型

提供主键、时间戳、软删除字段，以及带生命周期事件的删除方法
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Integer, func, inspect
from sqlalchemy.orm import Mapped, Query, Session, declarative_base, declared_attr, mapped_column, object_session

if TYPE_CHECKING:
    from typing_extensions import Self

from .cascade.config import soft_delete_field
from .cascade.timestamp import fresh_timestamp
from .lifecycle import DeleteMode, ModelEventType, dispatch_model_event
from .utils import to_snake_case


# 声明基类
Base = declarative_base()


class CoreModel(Base):
    """ORM基础模型类

    提供功能：
    - 自增主键
    - 自动表名生成（驼峰转下划线）
    - 创建/更新/删除时间字段
    - 软删除 delete()、强制删除 force_delete()、恢复 undelete()
    - 删除生命周期事件（deleting / deleted / delete_failed）

    使用示例:
        from ycascade.orm import CoreModel, init_database

        init_database("sqlite:///./test.db")

        class User(CoreModel):
            username: Mapped[str] = mapped_column(String(50), unique=True)

        user = User(username="tom")
        user.save(commit=True)
        user.delete(commit=True)        # 设置 deleted_at
        user.force_delete(commit=True)  # 物理删除
    """
    __abstract__ = True

    # 允许非 Mapped[] 的类型注解
    __allow_unmapped__ = True

    # 软删除字段名
    __soft_delete_field__: ClassVar[str] = "deleted_at"

    # query 属性在 init_database 后通过 scoped_session.query_property() 设置
    query: ClassVar[Optional[Query]] = None

    # 当前删除模式，删除过程中有效
    _delete_mode: ClassVar[Optional[DeleteMode]] = None

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """驼峰命名转下划线"""
        name = cls.__name__
        if '_' in name:
            raise ValueError(f'{name}字符中包含下划线，无法转换')
        return to_snake_case(name)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        onupdate=func.now(),
        comment="更新时间"
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        default=None,
        comment="删除时间（软删除标记）"
    )

    # 系统字段列表（构造时自动忽略这些字段）
    _system_fields: ClassVar[set] = {'id', 'created_at', 'updated_at', 'deleted_at'}

    def __init__(self, **kwargs):
        """初始化模型实例

        系统字段（id, created_at, updated_at, deleted_at）由系统管理，传入的值会被忽略。
        """
        for field in self._system_fields:
            kwargs.pop(field, None)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id}>"

    @property
    def session(self) -> Session:
        """获取当前session

        优先使用对象所在的 session，其次是 query 属性的 session，最后是全局 scoped_session
        """
        session = object_session(self)
        if session is not None:
            return session
        if self.__class__.query is not None:
            return self.__class__.query.session
        from .db_session import db_manager
        return db_manager.get_session()

    # ==================== CRUD 操作方法 ====================

    def save(self, commit: bool = False) -> Self:
        """保存对象（自动判断新增或更新）

        Args:
            commit: 是否立即提交，默认False

        Returns:
            self: 返回自身，支持链式调用
        """
        self.session.add(self)
        self.__is_commit(commit)
        return self

    def add(self, commit: bool = False) -> Self:
        """添加对象到session，同 save()"""
        return self.save(commit)

    @classmethod
    def get(cls, id: int):
        """根据ID获取对象，不存在返回None"""
        return cls.query.filter_by(id=id).first()

    @classmethod
    def get_all(cls):
        """获取所有记录"""
        return cls.query.all()

    # ==================== 删除方法 ====================

    @property
    def is_force_deleting(self) -> bool:
        """当前是否正在强制删除"""
        return self._delete_mode is DeleteMode.FORCE

    @property
    def is_deleted(self) -> bool:
        """是否已软删除"""
        return getattr(self, soft_delete_field(type(self))) is not None

    @classmethod
    def fresh_timestamp(cls) -> datetime:
        """生成删除时间（sync_timestamp 为 True 时使用级联共享时间）"""
        from .cascade.executor import get_cascade_executor
        return fresh_timestamp(cls, get_cascade_executor().coordinator)

    def delete(self, commit: bool = False):
        """软删除对象

        设置删除时间并 flush，前后派发 deleting / deleted 事件。

        Args:
            commit: 是否立即提交，默认False
        """
        self._delete_with_events(DeleteMode.SOFT)
        self.__is_commit(commit)

    def force_delete(self, commit: bool = False):
        """物理删除对象

        Args:
            commit: 是否立即提交，默认False
        """
        self._delete_with_events(DeleteMode.FORCE)
        self.__is_commit(commit)

    def undelete(self, commit: bool = False) -> Self:
        """恢复软删除的对象（只恢复自身，不恢复关联记录）"""
        setattr(self, soft_delete_field(type(self)), None)
        self.session.add(self)
        self.__is_commit(commit)
        return self

    def _delete_with_events(self, mode: DeleteMode) -> None:
        session = self.session
        state = inspect(self)
        if state.transient or state.pending:
            # 先写入获得主键，级联会话按主键识别发起者
            session.add(self)
            session.flush()

        self._delete_mode = mode
        try:
            dispatch_model_event(self, ModelEventType.DELETING, mode)
            if mode is DeleteMode.FORCE:
                session.delete(self)
            else:
                setattr(self, soft_delete_field(type(self)), type(self).fresh_timestamp())
                session.add(self)
            session.flush()
            dispatch_model_event(self, ModelEventType.DELETED, mode)
        except Exception:
            dispatch_model_event(self, ModelEventType.DELETE_FAILED, mode)
            raise
        finally:
            self._delete_mode = None

    # ==================== 序列化方法 ====================

    def to_dict(self, exclude: set = None) -> dict:
        """转换为字典

        Args:
            exclude: 需要排除的字段集合

        Returns:
            字典格式的对象数据
        """
        exclude = exclude or set()
        return {
            c.key: getattr(self, c.key)
            for c in inspect(self).mapper.column_attrs
            if c.key not in exclude
        }

    def __is_commit(self, commit=False):
        """根据参数决定是否提交"""
        if commit:
            self.session.commit()


__all__: List[str] = ["Base", "CoreModel"]
