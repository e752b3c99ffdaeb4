"""
数据库会话管理模块

提供数据库引擎创建、会话管理等功能。

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 初始化数据库连接
- get_engine(): 获取数据库引擎
- db_session_scope(): session 上下文管理器（自动提交/回滚/清理）
- on_session_end(): 清理当前作用域的 session
"""

import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ycascade.log import get_logger

_logger = get_logger("ycascade.orm.session")

__all__ = [
    'db_manager',
    'init_database',
    'get_engine',
    'db_session_scope',
    'on_session_end',
]


class DatabaseManager:
    """数据库管理器（单例）

    使用示例:
        from ycascade.orm import db_manager

        db_manager.init(database_url="sqlite:///./test.db")
        engine = db_manager.engine
        session = db_manager.get_session()
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._engine = None
        self._session_scope = None
        self._scope_id_var: ContextVar[str] = ContextVar('session_scope_id', default='')
        self._initialized = True

    # ==================== 属性访问 ====================

    @property
    def engine(self):
        """获取数据库引擎

        Raises:
            RuntimeError: 数据库未初始化时
        """
        if self._engine is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._engine

    @property
    def session_scope(self) -> scoped_session:
        """获取 scoped session

        Raises:
            RuntimeError: 数据库未初始化时
        """
        if self._session_scope is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._session_scope

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._session_scope is not None

    # ==================== 核心方法 ====================

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        auto_setup_query: bool = True,
        **engine_options
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL（如果提供 config 则忽略）
            echo: 是否输出SQL语句
            pool_size: 连接池大小
            max_overflow: 最大溢出连接数
            pool_recycle: 连接回收时间
            pool_pre_ping: 连接前是否ping
            logger: 日志记录器
            scopefunc: session作用域函数，默认按上下文作用域ID区分
            config: 数据库配置对象（DatabaseSettings）
            auto_setup_query: 是否自动设置 CoreModel.query 属性，默认 True
            **engine_options: 其它 create_engine 参数（如 connect_args、isolation_level），
                覆盖上面的默认值；SQLite 的 connect_args 与 check_same_thread 合并

        Returns:
            tuple: (engine, session_scope)
        """
        if config is not None:
            database_url = getattr(config, "url", database_url)
            echo = getattr(config, "echo", echo)
            pool_size = getattr(config, "pool_size", pool_size)
            max_overflow = getattr(config, "max_overflow", max_overflow)
            pool_recycle = getattr(config, "pool_recycle", pool_recycle)
            pool_pre_ping = getattr(config, "pool_pre_ping", pool_pre_ping)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        if logger is None:
            logger = _logger

        logger.info(f"数据库配置URL: {database_url}")

        try:
            if database_url.startswith("sqlite"):
                db_path = database_url.split("///", 1)[-1] if "///" in database_url else ""
                connect_args = {"check_same_thread": False, **engine_options.pop("connect_args", {})}
                if db_path in ("", ":memory:"):
                    # 内存数据库：使用 StaticPool（单连接）
                    options = {"poolclass": StaticPool, **engine_options}
                    self._engine = create_engine(
                        database_url,
                        echo=echo,
                        connect_args=connect_args,
                        **options,
                    )
                    logger.info("SQLite内存数据库引擎创建成功（StaticPool）")
                else:
                    logger.info(f"SQLite文件数据库路径: {os.path.abspath(db_path)}")
                    options = {"pool_pre_ping": pool_pre_ping, **engine_options}
                    self._engine = create_engine(
                        database_url,
                        echo=echo,
                        connect_args=connect_args,
                        **options,
                    )
            else:
                options = {
                    "pool_pre_ping": pool_pre_ping,
                    "pool_size": pool_size,
                    "max_overflow": max_overflow,
                    "pool_recycle": pool_recycle,
                    **engine_options,
                }
                self._engine = create_engine(database_url, echo=echo, **options)
                logger.info("数据库引擎创建成功")
        except Exception as e:
            logger.error(f"创建数据库引擎失败: {str(e)}")
            raise

        session_maker = sessionmaker(autocommit=False, autoflush=True, bind=self._engine)
        self._session_scope = scoped_session(session_maker, scopefunc=scopefunc or self._get_scope_id)

        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()
            logger.info("CoreModel.query 属性已自动设置")

        logger.info("数据库session创建成功")
        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """获取当前作用域的 session（低级 API，推荐使用 db_session_scope()）"""
        return self.session_scope()

    def cleanup(self):
        """移除当前作用域的 session（幂等）

        session 中有未提交的更改时先提交，提交失败则回滚。
        """
        scope_id = self._get_scope_id()

        if self._session_scope and self._session_scope.registry.has():
            session = self._session_scope()
            if session.dirty or session.new or session.deleted:
                try:
                    session.commit()
                    _logger.debug(f"[scope={scope_id}] 自动提交成功")
                except Exception as e:
                    _logger.warning(f"[scope={scope_id}] 自动提交失败，回滚: {e}")
                    session.rollback()
            self._session_scope.remove()
            _logger.debug(f"[scope={scope_id}] session 已移除")

        self._scope_id_var.set('')

    def dispose(self):
        """释放引擎和 session（测试或应用关闭时使用）"""
        if self._session_scope is not None:
            self._session_scope.remove()
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_scope = None

    # ==================== 作用域ID ====================

    def _set_scope_id(self, scope_id: str = None) -> str:
        if not scope_id:
            scope_id = uuid4().hex[:8]
        self._scope_id_var.set(scope_id)
        return scope_id

    def _get_scope_id(self) -> str:
        value = self._scope_id_var.get()
        if not value:
            value = self._set_scope_id()
            _logger.debug(f"session 作用域ID未设置，自动生成: {value}")
        return value


# ==================== 全局单例 ====================

db_manager = DatabaseManager()


# ==================== 公开 API 函数 ====================

def init_database(
    database_url: str = None,
    echo: bool = False,
    logger: logging.Logger = None,
    scopefunc: Callable = None,
    config: Any = None,
    auto_setup_query: bool = True,
    **engine_options
):
    """初始化数据库连接

    db_manager.init() 的便捷包装函数。

    Returns:
        tuple: (engine, session_scope)
    """
    return db_manager.init(
        database_url=database_url,
        echo=echo,
        logger=logger,
        scopefunc=scopefunc,
        config=config,
        auto_setup_query=auto_setup_query,
        **engine_options
    )


def get_engine():
    """获取数据库引擎

    Raises:
        RuntimeError: 数据库未初始化时
    """
    return db_manager.engine


def on_session_end():
    """清理当前作用域的 session，db_manager.cleanup() 的便捷包装"""
    db_manager.cleanup()


@contextmanager
def db_session_scope(
    scope_id: Optional[str] = None,
    auto_commit: bool = True
) -> Generator[Session, None, None]:
    """session 上下文管理器

    Args:
        scope_id: 作用域ID，用于日志追踪，不传则自动生成
        auto_commit: 是否自动提交，默认 True

    使用示例:
        with db_session_scope() as session:
            order = session.get(Order, 1)
            order.delete()
        # 级联删除与订单删除在同一个事务中提交；异常时整体回滚
    """
    db_manager._set_scope_id(scope_id)
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        on_session_end()
