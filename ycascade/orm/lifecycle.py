"""模型生命周期事件

提供模型删除生命周期的事件机制：
- deleting: 删除前（失败会中止删除）
- deleted: 删除并 flush 成功后
- delete_failed: 删除过程中出现异常时（异常随后继续抛出）

监听器注册在类上，对其所有子类生效（按 MRO 查找）。

使用示例:
    from ycascade.orm.lifecycle import listens_for_model, ModelEventType

    @listens_for_model(Order, ModelEventType.DELETING)
    def before_order_delete(instance, mode):
        logger.info(f"即将删除订单 {instance.id}，模式 {mode.value}")
"""

from enum import Enum
from typing import Any, Callable, Dict, List

from ycascade.log import get_logger

logger = get_logger("ycascade.orm.lifecycle")

ModelListener = Callable[[Any, "DeleteMode"], None]


class DeleteMode(str, Enum):
    """删除模式"""

    SOFT = "soft"
    """软删除：设置删除时间"""

    FORCE = "force"
    """强制删除：物理删除记录"""


class ModelEventType(str, Enum):
    """模型生命周期事件类型"""

    DELETING = "deleting"
    """删除前"""

    DELETED = "deleted"
    """删除后"""

    DELETE_FAILED = "delete_failed"
    """删除失败"""


_listeners: Dict[ModelEventType, Dict[type, List[ModelListener]]] = {
    event_type: {} for event_type in ModelEventType
}


def register_model_listener(model_cls: type, event_type: ModelEventType, func: ModelListener) -> None:
    """注册模型事件监听器"""
    listeners = _listeners[ModelEventType(event_type)].setdefault(model_cls, [])
    if func not in listeners:
        listeners.append(func)


def remove_model_listener(model_cls: type, event_type: ModelEventType, func: ModelListener) -> None:
    """取消注册模型事件监听器"""
    listeners = _listeners[ModelEventType(event_type)].get(model_cls, [])
    if func in listeners:
        listeners.remove(func)


def listens_for_model(model_cls: type, event_type: ModelEventType) -> Callable[[ModelListener], ModelListener]:
    """装饰器方式注册模型事件监听器"""
    def decorator(func: ModelListener) -> ModelListener:
        register_model_listener(model_cls, event_type, func)
        return func
    return decorator


def get_model_listeners(model_cls: type, event_type: ModelEventType) -> List[ModelListener]:
    """获取作用于指定类的全部监听器（父类的监听器在前）"""
    registry = _listeners[ModelEventType(event_type)]
    result = []
    for klass in reversed(model_cls.__mro__):
        result.extend(registry.get(klass, ()))
    return result


def dispatch_model_event(instance: Any, event_type: ModelEventType, mode: DeleteMode) -> None:
    """派发模型事件

    监听器中的异常不做捕获，直接抛给删除调用方。
    """
    for func in get_model_listeners(type(instance), event_type):
        logger.debug(
            f"派发 {event_type.value} 事件: {instance!r} -> "
            f"{getattr(func, '__name__', func)}"
        )
        func(instance, mode)
