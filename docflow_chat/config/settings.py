"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("DOCFLOW_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 后端接口 ----
    api_base_url: str = Field(
        default="http://localhost:8080",
        description="后端 API 基础 URL，流式与普通接口共用",
    )
    api_token: Optional[str] = Field(default=None, description="Bearer 访问令牌（可选）")
    http_timeout: float = Field(default=80.0, ge=1.0, description="HTTP 超时时间（秒）")
    request_retries: int = Field(default=2, ge=0, le=5, description="查询类接口的重试次数")
    mutation_retries: int = Field(default=1, ge=0, le=5, description="删除/重命名接口的重试次数")
    request_retry_delay: float = Field(default=1.0, ge=0.0, description="重试间隔（秒）")

    # ---- 流式渲染 ----
    flush_interval: float = Field(
        default=0.05,
        ge=0.0,
        description="增量缓冲两次落盘之间的最小间隔（秒）",
    )

    # ---- 模型 ----
    default_model: str = Field(default="Pro/moonshotai/Kimi-K2.5", description="默认模型名称")
    brainstorm_model: str = Field(default="Pro/zai-org/GLM-4.7", description="头脑风暴使用的模型")
    brainstorm_min_count: int = Field(default=1, ge=1, description="头脑风暴最少方案数")
    brainstorm_max_count: int = Field(default=5, ge=1, le=10, description="头脑风暴最多方案数")
    brainstorm_temperature: float = Field(default=1.2, ge=0.0, le=2.0, description="头脑风暴采样温度")

    # ---- 会话列表 ----
    conversation_page_size: int = Field(default=20, ge=1, le=100, description="会话列表分页大小")

    # ---- 日志与本地化 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    locale: str = Field(default="zh", description="占位文案语言")

    model_config = SettingsConfigDict(
        env_prefix="DOCFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def check_brainstorm_bounds(self) -> "Settings":
        if self.brainstorm_min_count > self.brainstorm_max_count:
            raise ValueError("brainstorm_min_count must not exceed brainstorm_max_count")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
