"""软删除事件钩子"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session

from ycascade.log import get_logger

from .soft_delete_ignored_table import IgnoredTable
from .soft_delete_rewriter import SoftDeleteRewriter

logger = get_logger("ycascade.orm.soft_delete")

# 全局重写器实例
global_rewriter: Optional[SoftDeleteRewriter] = None


def activate_soft_delete_hook(
    deleted_field_name: str = "deleted_at",
    disable_soft_delete_option_name: str = "include_deleted",
    ignored_tables: List[IgnoredTable] = None
):
    """激活软删除钩子

    注册 Session 事件监听器（重复调用只注册一次），之后:
    - SELECT / UPDATE / DELETE 语句自动过滤已软删除的记录
    - session.delete() 软删除对象转为设置删除时间（force_delete() 除外，且不触发级联）
    - 自动设置 created_at / updated_at

    Args:
        deleted_field_name: 软删除字段名
        disable_soft_delete_option_name: 关闭过滤的 execution_option 名称
        ignored_tables: 不做过滤的表

    使用示例:
        activate_soft_delete_hook(ignored_tables=[IgnoredTable(name="audit_log")])

        Order.query.all()                                            # 不含已删除
        Order.query.execution_options(include_deleted=True).all()    # 包含已删除
    """
    global global_rewriter

    global_rewriter = SoftDeleteRewriter(
        deleted_field_name=deleted_field_name,
        disable_soft_delete_option_name=disable_soft_delete_option_name,
        ignored_tables=ignored_tables or [],
    )

    if not event.contains(Session, "do_orm_execute", _do_orm_execute):
        event.listen(Session, "do_orm_execute", _do_orm_execute)
    if not event.contains(Session, "before_flush", _before_flush):
        event.listen(Session, "before_flush", _before_flush)

    logger.debug(f"软删除钩子已激活: 字段={deleted_field_name}")


def deactivate_soft_delete_hook():
    """停用软删除钩子并移除事件监听器"""
    global global_rewriter
    global_rewriter = None

    if event.contains(Session, "do_orm_execute", _do_orm_execute):
        event.remove(Session, "do_orm_execute", _do_orm_execute)
    if event.contains(Session, "before_flush", _before_flush):
        event.remove(Session, "before_flush", _before_flush)


def is_soft_delete_active() -> bool:
    """检查软删除钩子是否激活"""
    return global_rewriter is not None


def _do_orm_execute(orm_execute_state: ORMExecuteState):
    rewriter = global_rewriter
    if rewriter is None:
        return
    if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
        return
    if orm_execute_state.is_select or orm_execute_state.is_update or orm_execute_state.is_delete:
        orm_execute_state.statement = rewriter.rewrite_statement(orm_execute_state.statement)


def _has_soft_delete_column(instance, field: str) -> bool:
    return field in inspect(type(instance)).columns


def _before_flush(session: Session, flush_context, instances):
    rewriter = global_rewriter
    if rewriter is None:
        return

    # 延迟导入，避免循环依赖
    from ..cascade.executor import get_cascade_executor
    from ..cascade.timestamp import fresh_timestamp

    now = datetime.now()
    for instance in session.new:
        if hasattr(instance, 'created_at') and instance.created_at is None:
            instance.created_at = now

    for instance in session.dirty:
        # 仅因集合变化被标记为 dirty 的对象不更新 updated_at
        if hasattr(instance, 'updated_at') and session.is_modified(instance, include_collections=False):
            instance.updated_at = now

    field = rewriter.deleted_field_name
    for instance in list(session.deleted):
        if getattr(instance, "is_force_deleting", False):
            continue
        if not _has_soft_delete_column(instance, field):
            continue

        setattr(instance, field, fresh_timestamp(type(instance), get_cascade_executor().coordinator))
        # 从 deleted 集合移回 dirty 集合
        session.expunge(instance)
        session.add(instance)
        logger.debug(f"session.delete({instance!r}) 已转为软删除")
