"""版本信息"""

__version__ = "0.1.0"
__description__ = "SQLAlchemy 级联软删除库"
