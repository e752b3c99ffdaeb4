"""级联删除时间戳协调器

一次逻辑删除可能波及多张表、多层关系。协调器保证同一棵级联树中，
开启了 sync_timestamp 的模型拿到完全相同的删除时间。

会话生命周期:
    - 级联树中第一个触发 deleting 事件的实体调用 begin()，创建会话并成为发起者
    - 嵌套级联再次调用 begin() 只返回已有时间，不覆盖发起者
    - 只有发起者自身的 deleted 事件会清除会话（按主键身份比较，而非对象引用；
      begin() 时尚未 flush 的发起者按 InstanceState 比较）

会话保存在 ContextVar 中：每个线程、每个 asyncio 任务各自独立，
互不相交的删除操作不会共享同一个会话。
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from sqlalchemy import inspect as sa_inspect

from ycascade.log import get_logger

logger = get_logger("ycascade.orm.cascade")

Clock = Callable[[], datetime]


def entity_key(entity: Any) -> Tuple:
    """获取实体的身份键（映射类, 主键元组, identity_token）

    同一条记录在不同 Session 或重新加载后是不同的 Python 对象，
    但身份键相同。
    """
    state = sa_inspect(entity, raiseerr=False)
    if state is None:
        return (type(entity), (getattr(entity, "id", None),), None)
    if state.key is not None:
        return state.key
    return state.mapper.identity_key_from_instance(entity)


@dataclass(frozen=True)
class CascadeSession:
    """一次级联删除的共享状态"""

    timestamp: datetime
    originator_key: Tuple
    # 发起者的 InstanceState；未 flush 的发起者主键为空，结束时按状态对象比较
    originator_state: Any = field(default=None, compare=False, repr=False)


class TimestampCoordinator:
    """时间戳协调器

    使用示例:
        from ycascade.orm.cascade import timestamp_coordinator

        ts = timestamp_coordinator.begin(order)      # 根实体开始级联
        timestamp_coordinator.current_or_now()       # 级联中的其它实体取同一时间
        timestamp_coordinator.end_if_originator(order)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or datetime.now
        self._session_var: ContextVar[Optional[CascadeSession]] = ContextVar(
            f"cascade_session_{id(self)}", default=None
        )

    # ==================== 属性访问 ====================

    @property
    def session(self) -> Optional[CascadeSession]:
        return self._session_var.get()

    @property
    def is_active(self) -> bool:
        return self._session_var.get() is not None

    @property
    def timestamp(self) -> Optional[datetime]:
        session = self._session_var.get()
        return session.timestamp if session else None

    @property
    def originator_key(self) -> Optional[Tuple]:
        session = self._session_var.get()
        return session.originator_key if session else None

    # ==================== 核心方法 ====================

    def now(self) -> datetime:
        """当前时钟时间"""
        return self._clock()

    def set_clock(self, clock: Optional[Clock]) -> None:
        """替换时钟（None 恢复为 datetime.now）"""
        self._clock = clock or datetime.now

    def begin(self, originator: Any) -> datetime:
        """开始（或加入）级联会话

        Args:
            originator: 触发删除的实体

        Returns:
            本次级联共享的删除时间
        """
        session = self._session_var.get()
        if session is not None:
            return session.timestamp

        session = CascadeSession(
            timestamp=self.now(),
            originator_key=entity_key(originator),
            originator_state=sa_inspect(originator, raiseerr=False),
        )
        self._session_var.set(session)
        logger.debug(f"级联会话开始: 发起者={originator!r}, 时间={session.timestamp.isoformat()}")
        return session.timestamp

    def current_or_now(self) -> datetime:
        """级联进行中返回共享时间，否则返回当前时间"""
        session = self._session_var.get()
        if session is not None:
            return session.timestamp
        return self.now()

    def end_if_originator(self, entity: Any) -> bool:
        """如果 entity 是会话发起者则清除会话

        Returns:
            是否清除了会话
        """
        session = self._session_var.get()
        if session is None or not self._is_originator(session, entity):
            return False
        self._session_var.set(None)
        logger.debug(f"级联会话结束: 发起者={entity!r}")
        return True

    def reset(self) -> None:
        """强制清除当前上下文的会话"""
        self._session_var.set(None)

    @staticmethod
    def _is_originator(session: CascadeSession, entity: Any) -> bool:
        state = session.originator_state
        if state is not None and sa_inspect(entity, raiseerr=False) is state:
            return True
        # begin() 时尚未 flush 的发起者只能按 InstanceState 识别
        if None in session.originator_key[1]:
            return False
        return session.originator_key == entity_key(entity)


# 全局协调器实例
timestamp_coordinator = TimestampCoordinator()


def get_timestamp_coordinator() -> TimestampCoordinator:
    """获取全局时间戳协调器"""
    return timestamp_coordinator


def fresh_timestamp(model_cls: type, coordinator: Optional[TimestampCoordinator] = None) -> datetime:
    """为模型生成删除时间

    模型声明 sync_timestamp = True 时使用级联会话的共享时间，否则使用当前时间。

    Args:
        model_cls: 被删除记录的模型类
        coordinator: 级联使用的协调器，默认全局协调器
    """
    coordinator = coordinator or timestamp_coordinator
    if getattr(model_cls, "sync_timestamp", False):
        return coordinator.current_or_now()
    return coordinator.now()
