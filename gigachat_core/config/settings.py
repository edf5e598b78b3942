"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
核心组件不直接读取全局 settings，而是在构造时接收显式参数；
这里的 settings 实例只供 api.service 门面和日志模块使用。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("GIGACHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
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

    # ---- GigaChat 连接 ----
    gigachat_access_token: Optional[str] = Field(default=None, description="GigaChat access token")
    gigachat_base_url: str = Field(
        default="https://gigachat.devices.sberbank.ru/api/v1",
        description="GigaChat API 基础URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    verify_ssl: bool = Field(default=True, description="是否校验服务端证书")

    # ---- 对话默认参数 ----
    default_model: str = Field(default="GigaChat", description="默认模型名")
    default_temperature: Optional[float] = Field(default=None, ge=0.0, description="默认生成温度")
    make_system_prompt_first: bool = Field(
        default=True,
        description="是否把唯一的 system 消息移动到序列首位",
    )
    max_tool_round_trips: Optional[int] = Field(
        default=None,
        ge=1,
        description="单次调用内工具往返的最大次数，未设置表示不限制",
    )
    upload_max_workers: int = Field(default=4, ge=1, le=32, description="附件并发上传线程数")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("gigachat_access_token")
    @classmethod
    def validate_access_token(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("Access token seems too short")
        return v

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
