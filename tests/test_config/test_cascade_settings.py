"""配置模块测试

测试 CascadeSettings 环境变量、YAML 加载和 configure_cascade_soft_delete
"""

import os

import pytest
from pydantic import ValidationError

from ycascade.config import (
    AppSettings,
    CascadeSettings,
    ConfigLoader,
    DatabaseSettings,
    load_yaml_config,
)
from ycascade.orm import CoreModel
from ycascade.orm.cascade import (
    CascadeConfig,
    FetchMethod,
    configure_cascade_soft_delete,
    get_cascade_executor,
    get_cascade_settings,
    soft_delete_field,
)


CASCADE_YAML = """
database:
  url: "sqlite:///./app.db"
logging:
  level: "DEBUG"
cascade:
  default_fetch_method: "chunked"
  default_chunk_size: 200
"""


@pytest.fixture(autouse=True)
def clear_config_cache():
    ConfigLoader.clear_cache()
    yield
    ConfigLoader.clear_cache()


class PlainModel:
    """未声明任何级联配置的类"""


class TestCascadeSettings:
    """测试级联配置类"""

    def test_defaults(self):
        settings = CascadeSettings()

        assert settings.deleted_field_name == "deleted_at"
        assert settings.default_fetch_method == "direct"
        assert settings.default_chunk_size == 500

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("YCASCADE_CASCADE_DELETED_FIELD_NAME", "removed_at")
        monkeypatch.setenv("YCASCADE_CASCADE_DEFAULT_CHUNK_SIZE", "1000")

        settings = CascadeSettings()

        assert settings.deleted_field_name == "removed_at"
        assert settings.default_chunk_size == 1000

    def test_env_vars_apply_to_global_settings(self, monkeypatch):
        monkeypatch.setenv("YCASCADE_CASCADE_DEFAULT_FETCH_METHOD", "chunk")

        config = CascadeConfig.from_model(PlainModel)

        assert config.fetch_method is FetchMethod.CHUNKED

    def test_invalid_fetch_method(self):
        with pytest.raises(ValidationError):
            CascadeSettings(default_fetch_method="lazy")

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            CascadeSettings(default_chunk_size=0)

    def test_database_env_prefix(self, monkeypatch):
        monkeypatch.setenv("YCASCADE_DB_URL", "sqlite:///./env.db")

        assert DatabaseSettings().url == "sqlite:///./env.db"


class TestConfigureCascadeSoftDelete:
    """测试全局配置"""

    def test_kwargs_override_current_settings(self):
        configure_cascade_soft_delete(default_chunk_size=10)
        configure_cascade_soft_delete(deleted_field_name="removed_at")

        settings = get_cascade_settings()
        assert settings.default_chunk_size == 10
        assert settings.deleted_field_name == "removed_at"

    def test_kwargs_are_validated(self):
        with pytest.raises(ValidationError):
            configure_cascade_soft_delete(default_chunk_size=0)

    def test_settings_object(self):
        settings = CascadeSettings(default_fetch_method="chunked", default_chunk_size=20)

        executor = configure_cascade_soft_delete(settings=settings)

        assert get_cascade_settings() is settings
        assert get_cascade_executor() is executor
        assert executor.settings is settings

    def test_deleted_field_name_default(self):
        configure_cascade_soft_delete(deleted_field_name="removed_at")

        assert soft_delete_field(PlainModel) == "removed_at"
        # 模型声明的字段优先
        assert soft_delete_field(CoreModel) == "deleted_at"

    def test_executor_created_lazily(self):
        executor = get_cascade_executor()

        assert get_cascade_executor() is executor
        assert executor.settings is None


class TestYamlConfig:
    """测试 YAML 配置加载"""

    def test_load_app_settings(self, temp_file):
        path = temp_file("app_settings.yaml", CASCADE_YAML)

        settings = load_yaml_config(path, AppSettings)

        assert settings.database.url == "sqlite:///./app.db"
        assert settings.logging.level == "DEBUG"
        assert settings.cascade.default_fetch_method == "chunked"
        assert settings.cascade.default_chunk_size == 200

    def test_configure_from_yaml(self, temp_file):
        path = temp_file("cascade_from_yaml.yaml", CASCADE_YAML)
        settings = load_yaml_config(path, AppSettings)

        configure_cascade_soft_delete(settings=settings.cascade)
        config = CascadeConfig.from_model(PlainModel)

        assert config.is_chunked
        assert config.chunk_size == 200

    def test_overrides_do_not_pollute_cache(self, temp_file):
        path = temp_file("cascade_flat.yaml", "default_chunk_size: 50\n")

        settings = load_yaml_config(path, CascadeSettings, default_fetch_method="chunk")

        assert settings.default_chunk_size == 50
        assert settings.default_fetch_method == "chunk"
        assert "default_fetch_method" not in ConfigLoader.load(path)

    def test_empty_file(self, temp_file):
        path = temp_file("empty.yaml", "")

        assert ConfigLoader.load(path) == {}
        assert load_yaml_config(path, CascadeSettings).default_chunk_size == 500

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(os.path.join(temp_dir, "missing.yaml"))

    def test_relative_path_with_base_dir(self, temp_file, temp_dir):
        temp_file("relative.yaml", "cascade:\n  default_chunk_size: 7\n")

        config = ConfigLoader.load("relative.yaml", base_dir=temp_dir)

        assert config["cascade"]["default_chunk_size"] == 7

    def test_cache_and_reload(self, temp_file):
        path = temp_file("cached.yaml", "default_chunk_size: 1\n")
        first = ConfigLoader.load(path)

        with open(path, "w", encoding="utf-8") as f:
            f.write("default_chunk_size: 2\n")

        assert ConfigLoader.load(path) is first
        assert ConfigLoader.load(path, use_cache=False)["default_chunk_size"] == 2
        assert ConfigLoader.reload(path)["default_chunk_size"] == 2
