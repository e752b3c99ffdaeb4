"""级联配置

从模型类属性读取级联配置:

    class Order(CascadeSoftDeleteMixin, CoreModel):
        cascade_deletes = ["order_lines", "payments"]   # 按声明顺序级联
        fetch_method = "chunked"                         # direct（默认）| chunked
        chunk_size = 200                                 # 默认 500
        sync_timestamp = True                            # 删除时间取级联共享时间
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ycascade.config import CascadeSettings

from .exceptions import InvalidCascadeConfiguration


class FetchMethod(str, Enum):
    """关联记录获取方式"""

    DIRECT = "direct"
    """一次获取全部关联记录"""

    CHUNKED = "chunked"
    """按主键分批获取，限制内存占用"""


# 兼容 get / chunk 写法
_FETCH_METHOD_ALIASES = {
    "direct": FetchMethod.DIRECT,
    "get": FetchMethod.DIRECT,
    "chunked": FetchMethod.CHUNKED,
    "chunk": FetchMethod.CHUNKED,
}


_cascade_settings: Optional[CascadeSettings] = None


def get_cascade_settings() -> CascadeSettings:
    """获取级联配置（未配置时从环境变量创建默认配置）"""
    global _cascade_settings
    if _cascade_settings is None:
        _cascade_settings = CascadeSettings()
    return _cascade_settings


def set_cascade_settings(settings: Optional[CascadeSettings]) -> None:
    """替换级联配置，None 表示下次使用时重新创建默认配置"""
    global _cascade_settings
    _cascade_settings = settings


def soft_delete_field(model_cls: type) -> str:
    """获取模型的软删除字段名"""
    return getattr(model_cls, "__soft_delete_field__", None) or get_cascade_settings().deleted_field_name


def parse_fetch_method(model_cls: type, value) -> FetchMethod:
    if isinstance(value, FetchMethod):
        return value
    method = _FETCH_METHOD_ALIASES.get(str(value).lower())
    if method is None:
        raise InvalidCascadeConfiguration(
            model_cls, f"不支持的 fetch_method: {value!r}，可选 direct / chunked"
        )
    return method


@dataclass(frozen=True)
class CascadeConfig:
    """单个模型的级联配置"""

    relationships: Tuple[str, ...] = ()
    fetch_method: FetchMethod = FetchMethod.DIRECT
    chunk_size: int = 500
    sync_timestamp: bool = False

    @property
    def is_chunked(self) -> bool:
        return self.fetch_method is FetchMethod.CHUNKED

    @classmethod
    def from_model(cls, model_cls: type, settings: Optional[CascadeSettings] = None) -> "CascadeConfig":
        """读取模型类上声明的级联配置

        Raises:
            InvalidCascadeConfiguration: fetch_method 不支持或 chunk_size 不是正整数
        """
        settings = settings or get_cascade_settings()

        relationships = getattr(model_cls, "cascade_deletes", None) or ()
        if isinstance(relationships, str):
            relationships = (relationships,)

        fetch_method = getattr(model_cls, "fetch_method", None) or settings.default_fetch_method

        chunk_size = getattr(model_cls, "chunk_size", None)
        if chunk_size is None:
            chunk_size = settings.default_chunk_size
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
            raise InvalidCascadeConfiguration(model_cls, f"chunk_size 必须是正整数，当前为 {chunk_size!r}")

        return cls(
            relationships=tuple(relationships),
            fetch_method=parse_fetch_method(model_cls, fetch_method),
            chunk_size=chunk_size,
            sync_timestamp=bool(getattr(model_cls, "sync_timestamp", False)),
        )
