"""
YCascade - SQLAlchemy 级联软删除库

一次删除，按模型声明级联软删除（或强制删除）关联记录，并保证删除时间一致
"""

from .version import __version__, __description__

from .orm import (
    Base,
    CoreModel,
    CascadeSoftDeleteMixin,
    DeleteMode,
    init_database,
    db_session_scope,
    configure_cascade_soft_delete,
    activate_soft_delete_hook,
    CascadeSoftDeleteError,
    SoftDeleteNotSupported,
    InvalidRelationships,
    InvalidCascadeConfiguration,
    CascadeCollaboratorError,
)

from .config import AppSettings, CascadeSettings, DatabaseSettings, LoggingSettings, load_yaml_config

from .log import get_logger, setup_root_logger

__all__ = [
    "__version__",
    "__description__",
    "Base",
    "CoreModel",
    "CascadeSoftDeleteMixin",
    "DeleteMode",
    "init_database",
    "db_session_scope",
    "configure_cascade_soft_delete",
    "activate_soft_delete_hook",
    "CascadeSoftDeleteError",
    "SoftDeleteNotSupported",
    "InvalidRelationships",
    "InvalidCascadeConfiguration",
    "CascadeCollaboratorError",
    "AppSettings",
    "CascadeSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "load_yaml_config",
    "get_logger",
    "setup_root_logger",
]
