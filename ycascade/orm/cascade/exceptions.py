"""级联软删除异常类

定义级联软删除相关的异常层次结构
"""

from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError


class CascadeSoftDeleteError(Exception):
    """级联软删除错误基类

    所有级联软删除相关的异常都继承自此类
    """
    pass


class SoftDeleteNotSupported(CascadeSoftDeleteError):
    """模型不支持软删除

    模型没有软删除字段时抛出，此时不会执行任何删除操作
    """

    def __init__(self, model_class: type):
        self.model_class = model_class
        super().__init__(
            f"{model_class.__name__} 未实现软删除（缺少软删除字段），无法级联软删除"
        )


class InvalidRelationships(CascadeSoftDeleteError):
    """级联关系配置无效

    relationships 列出全部无效的关系名，而不仅是第一个
    """

    def __init__(self, relationships: Sequence[str], model_class: Optional[type] = None):
        self.relationships: List[str] = list(relationships)
        self.model_class = model_class
        owner = f"{model_class.__name__} 的" if model_class is not None else ""
        names = ", ".join(f"'{name}'" for name in self.relationships)
        noun = "关系" if len(self.relationships) == 1 else "这些关系"
        super().__init__(f"{owner}级联删除配置有误，{noun}不存在或不是 relationship: {names}")

    def __repr__(self) -> str:
        return f"InvalidRelationships(relationships={self.relationships!r})"


class InvalidCascadeConfiguration(CascadeSoftDeleteError):
    """级联配置项错误（fetch_method、chunk_size 等）"""

    def __init__(self, model_class: type, reason: str):
        self.model_class = model_class
        self.reason = reason
        super().__init__(f"{model_class.__name__} 级联配置错误: {reason}")


class CascadeCollaboratorError(CascadeSoftDeleteError):
    """持久层错误

    查询或删除关联记录时数据库报错（约束冲突、连接断开等），
    包含关系名和原始异常。不做重试，剩余关系不再处理。
    """

    def __init__(self, relationship: str, original_error: Exception, model_class: Optional[type] = None):
        self.relationship = relationship
        self.original_error = original_error
        self.model_class = model_class
        owner = f"{model_class.__name__}." if model_class is not None else ""
        super().__init__(f"级联处理关系 '{owner}{relationship}' 失败: {original_error}")

    def __repr__(self) -> str:
        return (
            f"CascadeCollaboratorError(relationship={self.relationship!r}, "
            f"original_error={self.original_error!r})"
        )


@contextmanager
def wrap_collaborator_errors(entity: Any, relationship: str) -> Iterator[None]:
    """把 SQLAlchemy 异常包装为 CascadeCollaboratorError"""
    try:
        yield
    except SQLAlchemyError as e:
        raise CascadeCollaboratorError(relationship, e, type(entity)) from e
