"""级联软删除

删除一个支持软删除的实体时，按模型声明的 cascade_deletes 级联删除关联记录:
- 软删除级联为软删除，强制删除级联为物理删除
- 同一次删除涉及的实体共享同一个删除时间（sync_timestamp）
- 删除前完整校验配置，配置错误时不执行任何语句
- 支持一次获取（direct）和按主键分批（chunked）两种获取方式
"""

from .config import (
    CascadeConfig,
    FetchMethod,
    get_cascade_settings,
    set_cascade_settings,
    soft_delete_field,
)
from .exceptions import (
    CascadeSoftDeleteError,
    SoftDeleteNotSupported,
    InvalidRelationships,
    InvalidCascadeConfiguration,
    CascadeCollaboratorError,
)
from .timestamp import (
    CascadeSession,
    TimestampCoordinator,
    timestamp_coordinator,
    get_timestamp_coordinator,
    fresh_timestamp,
    entity_key,
)
from .validator import CascadeValidator
from .relations import (
    RelationshipKind,
    RelationshipHandle,
    DirectRelationshipHandle,
    ThroughPivotRelationshipHandle,
    resolve_relationship,
)
from .walker import RelationshipWalker
from .executor import (
    CascadeExecutor,
    configure_cascade_soft_delete,
    get_cascade_executor,
    reset_cascade_executor,
)
from .mixin import CascadeSoftDeleteMixin

__all__ = [
    # 配置
    "CascadeConfig",
    "FetchMethod",
    "get_cascade_settings",
    "set_cascade_settings",
    "soft_delete_field",
    # 异常
    "CascadeSoftDeleteError",
    "SoftDeleteNotSupported",
    "InvalidRelationships",
    "InvalidCascadeConfiguration",
    "CascadeCollaboratorError",
    # 时间戳
    "CascadeSession",
    "TimestampCoordinator",
    "timestamp_coordinator",
    "get_timestamp_coordinator",
    "fresh_timestamp",
    "entity_key",
    # 校验 / 遍历 / 执行
    "CascadeValidator",
    "RelationshipKind",
    "RelationshipHandle",
    "DirectRelationshipHandle",
    "ThroughPivotRelationshipHandle",
    "resolve_relationship",
    "RelationshipWalker",
    "CascadeExecutor",
    "configure_cascade_soft_delete",
    "get_cascade_executor",
    "reset_cascade_executor",
    "CascadeSoftDeleteMixin",
]
