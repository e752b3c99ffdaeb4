"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 内存数据库引擎和会话
- SQL 语句记录
- 可控时钟
- 全局状态清理（级联会话、级联配置、软删除钩子）
"""

import itertools
import os
import tempfile
from datetime import datetime, timedelta
from typing import Generator, List

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ycascade.orm import Base, CoreModel, deactivate_soft_delete_hook
from ycascade.orm.cascade import reset_cascade_executor, timestamp_coordinator


# ==================== 全局状态清理 ====================

@pytest.fixture(autouse=True)
def reset_cascade_state():
    """每个测试前后清理级联会话、级联配置和软删除钩子"""
    timestamp_coordinator.reset()
    reset_cascade_executor()
    yield
    timestamp_coordinator.reset()
    timestamp_coordinator.set_clock(None)
    reset_cascade_executor()
    deactivate_soft_delete_hook()


# ==================== 基础 Fixtures ====================

@pytest.fixture(scope="session")
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_file(temp_dir):
    """创建临时文件的工厂函数"""
    created_files = []

    def _create_file(filename: str, content: str = "") -> str:
        filepath = os.path.join(temp_dir, filename)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        created_files.append(filepath)
        return filepath

    yield _create_file

    for f in created_files:
        if os.path.exists(f):
            os.remove(f)


@pytest.fixture
def fixed_clock():
    """每次调用前进一秒的时钟，第一次调用返回 2024-01-01 12:00:00"""
    base = datetime(2024, 1, 1, 12, 0, 0)
    counter = itertools.count()
    timestamp_coordinator.set_clock(lambda: base + timedelta(seconds=next(counter)))
    yield base
    timestamp_coordinator.set_clock(None)


# ==================== 数据库 Fixtures ====================

@pytest.fixture
def memory_engine():
    """创建内存数据库引擎

    使用 StaticPool 和 check_same_thread=False 确保所有操作使用同一个连接
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(memory_engine) -> Generator[Session, None, None]:
    """建表并创建数据库会话，同时设置 CoreModel.query"""
    Base.metadata.create_all(bind=memory_engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=True, bind=memory_engine)
    session_scope = scoped_session(SessionLocal)
    CoreModel.query = session_scope.query_property()
    session = session_scope()
    try:
        yield session
    finally:
        session_scope.remove()
        CoreModel.query = None


@pytest.fixture
def sql_statements(memory_engine) -> Generator[List[str], None, None]:
    """记录引擎执行的 SQL 语句"""
    statements: List[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(memory_engine, "before_cursor_execute", _record)
    yield statements
    event.remove(memory_engine, "before_cursor_execute", _record)

