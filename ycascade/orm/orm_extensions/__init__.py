"""ORM扩展模块 - 软删除功能

- 自动查询过滤（自动排除已删除记录）
- session.delete() 转为软删除
- 软删除/恢复方法
- 可配置的忽略表
- 支持 execution_options 禁用过滤

级联软删除见 ycascade.orm.cascade。
"""

from .soft_delete_ignored_table import IgnoredTable
from .soft_delete_rewriter import SoftDeleteRewriter
from .soft_delete_hook import (
    activate_soft_delete_hook,
    deactivate_soft_delete_hook,
    is_soft_delete_active,
)
from .soft_delete_mixin import (
    generate_soft_delete_mixin_class,
    SimpleSoftDeleteMixin,
)

__all__ = [
    "IgnoredTable",
    "SoftDeleteRewriter",
    "activate_soft_delete_hook",
    "deactivate_soft_delete_hook",
    "is_soft_delete_active",
    "generate_soft_delete_mixin_class",
    "SimpleSoftDeleteMixin",
]
