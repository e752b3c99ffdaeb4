"""级联执行器

把模型删除生命周期接到级联逻辑上:

    deleting      -> 校验配置 -> 开始/加入级联会话 -> 按声明顺序处理非空关系
    deleted       -> 发起者自身删除完成时结束级联会话
    delete_failed -> 发起者删除失败时同样结束级联会话

使用示例:
    from ycascade.orm import configure_cascade_soft_delete

    # 应用启动时（可选，不调用时使用默认配置）
    configure_cascade_soft_delete(default_fetch_method="chunked", default_chunk_size=200)
"""

from typing import Any, List, Optional

from ycascade.config import CascadeSettings
from ycascade.log import get_logger

from ..lifecycle import DeleteMode
from .config import CascadeConfig, get_cascade_settings, set_cascade_settings
from .exceptions import wrap_collaborator_errors
from .relations import resolve_relationship
from .timestamp import TimestampCoordinator, timestamp_coordinator
from .validator import CascadeValidator
from .walker import RelationshipWalker

logger = get_logger("ycascade.orm.cascade")


def _resolve_mode(entity: Any, mode: Optional[DeleteMode]) -> DeleteMode:
    if mode is not None:
        return DeleteMode(mode)
    return DeleteMode.FORCE if getattr(entity, "is_force_deleting", False) else DeleteMode.SOFT


class CascadeExecutor:
    """级联执行器"""

    def __init__(
        self,
        coordinator: Optional[TimestampCoordinator] = None,
        validator: Optional[CascadeValidator] = None,
        walker: Optional[RelationshipWalker] = None,
        settings: Optional[CascadeSettings] = None,
    ):
        self.settings = settings
        self.coordinator = coordinator or timestamp_coordinator
        self.validator = validator or CascadeValidator(settings)
        self.walker = walker or RelationshipWalker(self.validator, settings, self.coordinator)

    def get_active_cascading_deletes(self, entity: Any) -> List[str]:
        """按声明顺序返回当前非空的级联关系名"""
        config = CascadeConfig.from_model(type(entity), self.settings)
        active = []
        for name in config.relationships:
            with wrap_collaborator_errors(entity, name):
                if resolve_relationship(entity, name, coordinator=self.coordinator).exists():
                    active.append(name)
        return active

    def on_deleting(self, entity: Any, mode: Optional[DeleteMode] = None) -> None:
        """实体删除前

        Raises:
            SoftDeleteNotSupported: 模型没有软删除字段
            InvalidRelationships: 存在无效的级联关系
            InvalidCascadeConfiguration: 级联配置项错误
            CascadeCollaboratorError: 数据库操作失败
        """
        config = self.validator.validate(entity)
        mode = _resolve_mode(entity, mode)

        self.coordinator.begin(entity)

        if not config.relationships:
            return

        active = self.get_active_cascading_deletes(entity)
        logger.debug(f"{entity!r} 待级联关系: {active}（声明 {list(config.relationships)}）")
        for name in active:
            self.walker.process(entity, name, mode, config)

    def on_deleted(self, entity: Any, mode: Optional[DeleteMode] = None) -> None:
        """实体删除后"""
        self.coordinator.end_if_originator(entity)

    def on_delete_failed(self, entity: Any, mode: Optional[DeleteMode] = None) -> None:
        """实体删除失败"""
        if self.coordinator.end_if_originator(entity):
            logger.warning(f"{entity!r} 删除失败，级联会话已结束")


# 全局执行器实例
_cascade_executor: Optional[CascadeExecutor] = None


def configure_cascade_soft_delete(
    settings: Optional[CascadeSettings] = None,
    coordinator: Optional[TimestampCoordinator] = None,
    **kwargs,
) -> CascadeExecutor:
    """配置级联软删除

    Args:
        settings: 级联配置，为空时用 kwargs 覆盖当前配置
        coordinator: 时间戳协调器，默认全局协调器
        **kwargs: CascadeSettings 字段（deleted_field_name、default_fetch_method、default_chunk_size）

    Returns:
        新的全局执行器
    """
    global _cascade_executor
    if settings is None:
        settings = CascadeSettings(**{**get_cascade_settings().model_dump(), **kwargs})
    set_cascade_settings(settings)
    _cascade_executor = CascadeExecutor(coordinator=coordinator, settings=settings)
    logger.info(
        f"级联软删除已配置: 软删除字段={settings.deleted_field_name}, "
        f"获取方式={settings.default_fetch_method}, 分批大小={settings.default_chunk_size}"
    )
    return _cascade_executor


def get_cascade_executor() -> CascadeExecutor:
    """获取全局执行器（未配置时使用默认配置创建）"""
    global _cascade_executor
    if _cascade_executor is None:
        _cascade_executor = CascadeExecutor()
    return _cascade_executor


def reset_cascade_executor() -> None:
    """清除全局执行器和级联配置"""
    global _cascade_executor
    _cascade_executor = None
    set_cascade_settings(None)
