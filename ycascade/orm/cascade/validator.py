"""级联配置校验

在任何删除语句执行前检查：
- 模型是否支持软删除（存在软删除字段）
- cascade_deletes 中的每个名称是否都是 relationship（一次列出全部无效项）
- fetch_method / chunk_size 是否合法

校验只读取映射元数据，不访问数据库。
"""

from typing import Any, List, Optional

from sqlalchemy import inspect as sa_inspect

from ycascade.config import CascadeSettings

from .config import CascadeConfig, soft_delete_field
from .exceptions import InvalidRelationships, SoftDeleteNotSupported


def _mapper_of(model_cls: type):
    return sa_inspect(model_cls, raiseerr=False)


class CascadeValidator:
    """级联配置校验器"""

    def __init__(self, settings: Optional[CascadeSettings] = None):
        self.settings = settings

    def supports_soft_delete(self, model_cls: type) -> bool:
        """模型的映射表中是否存在软删除字段"""
        mapper = _mapper_of(model_cls)
        if mapper is None:
            return False
        return soft_delete_field(model_cls) in mapper.columns

    def find_invalid_relationships(self, model_cls: type) -> List[str]:
        """返回所有无效的级联关系名

        不存在的属性、普通字段、方法、property 等都视为无效。
        """
        config = CascadeConfig.from_model(model_cls, self.settings)
        mapper = _mapper_of(model_cls)
        if mapper is None:
            return list(config.relationships)
        return [name for name in config.relationships if name not in mapper.relationships]

    def validate(self, entity: Any) -> CascadeConfig:
        """校验实体是否可以级联软删除

        Returns:
            实体的级联配置

        Raises:
            SoftDeleteNotSupported: 模型没有软删除字段
            InvalidRelationships: 存在无效的级联关系
            InvalidCascadeConfiguration: fetch_method / chunk_size 配置错误
        """
        model_cls = type(entity)
        if not self.supports_soft_delete(model_cls):
            raise SoftDeleteNotSupported(model_cls)

        config = CascadeConfig.from_model(model_cls, self.settings)

        invalid = self.find_invalid_relationships(model_cls)
        if invalid:
            raise InvalidRelationships(invalid, model_cls)

        return config
