"""级联软删除 Mixin

使用示例:
    from sqlalchemy.orm import relationship
    from ycascade.orm import CoreModel, CascadeSoftDeleteMixin

    class Order(CascadeSoftDeleteMixin, CoreModel):
        __tablename__ = "order"

        cascade_deletes = ["order_lines"]
        fetch_method = "chunked"
        chunk_size = 200
        sync_timestamp = True

        order_lines = relationship("OrderLine", back_populates="order")

    order.delete()          # 订单与订单项软删除，删除时间一致
    order.force_delete()    # 订单与订单项物理删除
"""

from typing import Any, ClassVar, List, Optional, Sequence, Union

from ..lifecycle import DeleteMode, ModelEventType, listens_for_model
from .config import CascadeConfig, FetchMethod
from .executor import get_cascade_executor


class CascadeSoftDeleteMixin:
    """级联软删除 Mixin

    需要与提供 delete() / force_delete() 生命周期的模型基类（CoreModel）一起使用。
    """

    # 需要级联删除的 relationship 名，按声明顺序处理
    cascade_deletes: ClassVar[Sequence[str]] = ()

    # direct | chunked，None 使用全局默认
    fetch_method: ClassVar[Optional[Union[str, FetchMethod]]] = None

    chunk_size: ClassVar[Optional[int]] = None

    # 删除时间使用级联共享时间
    sync_timestamp: ClassVar[bool] = False

    def get_cascading_deletes(self) -> List[str]:
        """声明的级联关系名"""
        return list(CascadeConfig.from_model(type(self)).relationships)

    def get_active_cascading_deletes(self) -> List[str]:
        """当前非空的级联关系名"""
        return get_cascade_executor().get_active_cascading_deletes(self)


@listens_for_model(CascadeSoftDeleteMixin, ModelEventType.DELETING)
def _cascade_on_deleting(instance: Any, mode: DeleteMode) -> None:
    get_cascade_executor().on_deleting(instance, mode)


@listens_for_model(CascadeSoftDeleteMixin, ModelEventType.DELETED)
def _cascade_on_deleted(instance: Any, mode: DeleteMode) -> None:
    get_cascade_executor().on_deleted(instance, mode)


@listens_for_model(CascadeSoftDeleteMixin, ModelEventType.DELETE_FAILED)
def _cascade_on_delete_failed(instance: Any, mode: DeleteMode) -> None:
    get_cascade_executor().on_delete_failed(instance, mode)
