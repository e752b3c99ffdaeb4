"""关系遍历器

处理单个级联关系，在两条路径中选择其一:

- 批量路径：关联记录都没有需要继续级联的子关系时，一条 UPDATE（软删除）
  或 DELETE（强制删除）处理整个集合（分批模式下每页一条）
- 逐条路径：存在需要继续级联的子关系时，加载每条记录并调用它自己的
  delete() / force_delete()，由其生命周期事件继续向下级联；多对多关系逐条删除
  的是中间表记录

分批模式按主键升序分页（键集分页），一页处理完成后才获取下一页。
"""

from typing import Any, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import object_session

from ycascade.config import CascadeSettings
from ycascade.log import get_logger

from ..lifecycle import DeleteMode
from .config import CascadeConfig, soft_delete_field
from .exceptions import InvalidRelationships, wrap_collaborator_errors
from .relations import RelationshipHandle, active_criterion, non_empty_criterion, resolve_relationship
from .timestamp import TimestampCoordinator, fresh_timestamp, timestamp_coordinator
from .validator import CascadeValidator

logger = get_logger("ycascade.orm.cascade")


class RelationshipWalker:
    """级联关系遍历器"""

    def __init__(
        self,
        validator: Optional[CascadeValidator] = None,
        settings: Optional[CascadeSettings] = None,
        coordinator: Optional[TimestampCoordinator] = None,
    ):
        self.settings = settings
        self.validator = validator or CascadeValidator(settings)
        self.coordinator = coordinator or timestamp_coordinator

    def process(
        self,
        entity: Any,
        name: str,
        mode: DeleteMode,
        config: Optional[CascadeConfig] = None,
    ) -> int:
        """级联处理实体的一个关系

        Args:
            entity: 正在删除的实体
            name: 关系名
            mode: 删除模式（与实体自身的删除模式一致）
            config: 实体的级联配置，默认从模型类读取

        Returns:
            处理的关联记录数

        Raises:
            CascadeCollaboratorError: 数据库操作失败
            InvalidRelationships: 关联模型的级联配置无效
        """
        config = config or CascadeConfig.from_model(type(entity), self.settings)

        with wrap_collaborator_errors(entity, name):
            handle = resolve_relationship(entity, name, coordinator=self.coordinator)
            descendants = self.has_descendant_cascades(handle)
            logger.debug(
                f"级联 {type(entity).__name__}.{name}: 形态={handle.kind.value}, "
                f"获取方式={config.fetch_method.value}, 路径={'逐条' if descendants else '批量'}, "
                f"模式={mode.value}"
            )
            if config.is_chunked:
                return self._process_chunked(handle, mode, config.chunk_size, descendants)
            return self._process_direct(handle, mode, descendants)

    def has_descendant_cascades(self, handle: RelationshipHandle) -> bool:
        """关联记录中是否有需要继续级联的记录

        关联模型声明了级联关系，并且至少有一条关联记录的某个级联关系非空。
        多对多关系同样以关联模型（而非中间表）判断。
        """
        target_cls = handle.related_class
        names = CascadeConfig.from_model(target_cls, self.settings).relationships
        if not names:
            return False

        invalid = self.validator.find_invalid_relationships(target_cls)
        if invalid:
            raise InvalidRelationships(invalid, target_cls)

        criterion = or_(*[non_empty_criterion(target_cls, name) for name in names])
        return handle.any_related(criterion)

    # ==================== 获取方式 ====================

    def _process_direct(self, handle: RelationshipHandle, mode: DeleteMode, descendants: bool) -> int:
        if not descendants:
            affected = handle.bulk_delete(None, mode)
            logger.debug(f"{handle!r} 批量{self._verb(mode)} {affected} 条")
            return affected

        if self._has_pivot_rows_only(handle):
            keys = handle.fetch_keys()
            self._delete_each_pivot_row(handle, keys, mode)
            return len(keys)

        records = handle.fetch_all()
        for record in records:
            self._delete_record(handle, record, mode)
        return len(records)

    def _process_chunked(
        self,
        handle: RelationshipHandle,
        mode: DeleteMode,
        chunk_size: int,
        descendants: bool,
    ) -> int:
        processed = 0
        after = None
        while True:
            keys: List[Any] = handle.fetch_page(chunk_size, after)
            if not keys:
                break

            logger.debug(f"{handle!r} 第 {processed // chunk_size + 1} 页: {len(keys)} 条")
            if descendants and self._has_pivot_rows_only(handle):
                self._delete_each_pivot_row(handle, keys, mode)
            elif descendants:
                for record in handle.load(keys):
                    self._delete_record(handle, record, mode)
            else:
                handle.bulk_delete(keys, mode)

            processed += len(keys)
            after = keys[-1]
        return processed

    # ==================== 逐条删除 ====================

    @staticmethod
    def _has_pivot_rows_only(handle: RelationshipHandle) -> bool:
        return handle.is_through and handle.target_class is None

    def _delete_each_pivot_row(self, handle: RelationshipHandle, keys: List[Any], mode: DeleteMode) -> None:
        # 未映射的中间表没有记录对象，每行一条语句
        for key in keys:
            handle.bulk_delete([key], mode)

    def _delete_record(self, handle: RelationshipHandle, record: Any, mode: DeleteMode) -> None:
        deleter = getattr(record, "force_delete" if mode is DeleteMode.FORCE else "delete", None)
        if callable(deleter):
            deleter()
            return

        # 没有生命周期方法的记录（例如映射了类的中间表）直接在 session 中处理
        session = object_session(record) or handle.session
        record_cls = type(record)
        if mode is DeleteMode.SOFT and active_criterion(record_cls) is not None:
            setattr(record, soft_delete_field(record_cls), fresh_timestamp(record_cls, self.coordinator))
        else:
            session.delete(record)
        session.flush()

    @staticmethod
    def _verb(mode: DeleteMode) -> str:
        return "强制删除" if mode is DeleteMode.FORCE else "软删除"
