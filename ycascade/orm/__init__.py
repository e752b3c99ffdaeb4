"""ORM模块

- CoreModel: 模型基类，包含ID、时间戳、软删除字段和带生命周期事件的删除方法
- 数据库会话管理
- 软删除扩展（查询过滤、session.delete 转软删除）
- 级联软删除（CascadeSoftDeleteMixin）

使用示例:
    from sqlalchemy import ForeignKey
    from sqlalchemy.orm import Mapped, mapped_column, relationship
    from ycascade.orm import CoreModel, CascadeSoftDeleteMixin, init_database, db_session_scope

    class Order(CascadeSoftDeleteMixin, CoreModel):
        cascade_deletes = ["order_lines"]
        sync_timestamp = True
        order_lines = relationship("OrderLine", back_populates="order")

    class OrderLine(CoreModel):
        sync_timestamp = True
        order_id: Mapped[int] = mapped_column(ForeignKey("order.id"))
        order = relationship("Order", back_populates="order_lines")

    init_database("sqlite:///./app.db")
    with db_session_scope() as session:
        session.get(Order, 1).delete()
"""

from .core_model import Base, CoreModel
from .db_session import (
    db_manager,
    init_database,
    get_engine,
    db_session_scope,
    on_session_end,
)
from .lifecycle import (
    DeleteMode,
    ModelEventType,
    listens_for_model,
    register_model_listener,
    remove_model_listener,
    dispatch_model_event,
)
from .orm_extensions import (
    IgnoredTable,
    SoftDeleteRewriter,
    activate_soft_delete_hook,
    deactivate_soft_delete_hook,
    is_soft_delete_active,
    generate_soft_delete_mixin_class,
    SimpleSoftDeleteMixin,
)
from .cascade import (
    CascadeSoftDeleteMixin,
    CascadeExecutor,
    CascadeValidator,
    CascadeConfig,
    FetchMethod,
    RelationshipWalker,
    RelationshipKind,
    TimestampCoordinator,
    timestamp_coordinator,
    get_timestamp_coordinator,
    configure_cascade_soft_delete,
    get_cascade_executor,
    CascadeSoftDeleteError,
    SoftDeleteNotSupported,
    InvalidRelationships,
    InvalidCascadeConfiguration,
    CascadeCollaboratorError,
)

__all__ = [
    # 模型
    "Base",
    "CoreModel",
    # 数据库会话
    "db_manager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "on_session_end",
    # 生命周期事件
    "DeleteMode",
    "ModelEventType",
    "listens_for_model",
    "register_model_listener",
    "remove_model_listener",
    "dispatch_model_event",
    # 软删除扩展
    "IgnoredTable",
    "SoftDeleteRewriter",
    "activate_soft_delete_hook",
    "deactivate_soft_delete_hook",
    "is_soft_delete_active",
    "generate_soft_delete_mixin_class",
    "SimpleSoftDeleteMixin",
    # 级联软删除
    "CascadeSoftDeleteMixin",
    "CascadeExecutor",
    "CascadeValidator",
    "CascadeConfig",
    "FetchMethod",
    "RelationshipWalker",
    "RelationshipKind",
    "TimestampCoordinator",
    "timestamp_coordinator",
    "get_timestamp_coordinator",
    "configure_cascade_soft_delete",
    "get_cascade_executor",
    "CascadeSoftDeleteError",
    "SoftDeleteNotSupported",
    "InvalidRelationships",
    "InvalidCascadeConfiguration",
    "CascadeCollaboratorError",
]
