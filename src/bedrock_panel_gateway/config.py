"""配置管理模块"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# 默认配置
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 18083
DEFAULT_CONFIG_DIR = "./config"
DEFAULT_TIMEOUT = 10.0  # 单次上游调用超时（秒）

CONFIG_FILE_NAME = "gateway.yaml"


def _parse_bool(value: Any, default: bool = True) -> bool:
    """解析布尔配置"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class GatewayConfig:
    """网关配置

    面板地址和 API 密钥可以为空，缺失时由调度器在处理请求时报告
    ConfigurationError，而不是在启动时失败。
    """
    panel_url: str | None = None
    api_key: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.panel_url) and bool(self.api_key)

    @property
    def base_url(self) -> str:
        """去掉末尾斜杠的面板地址"""
        return (self.panel_url or "").rstrip("/")

    def require(self) -> "GatewayConfig":
        """确认配置完整，否则抛出 ConfigurationError"""
        if not self.is_configured:
            raise ConfigurationError()
        return self

    def summary(self) -> dict[str, Any]:
        """用于日志的配置摘要（隐藏密钥）"""
        return {
            "panel_url": self.base_url or None,
            "api_key_configured": bool(self.api_key),
            "timeout": self.timeout,
            "verify_ssl": self.verify_ssl,
        }

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        config_dir: str | Path | None = None,
    ) -> "GatewayConfig":
        """从配置文件和环境变量加载配置（环境变量优先）"""
        env = os.environ if environ is None else environ
        directory = Path(config_dir or env.get("CONFIG_DIR", DEFAULT_CONFIG_DIR))
        file_values = load_config_file(directory / CONFIG_FILE_NAME)

        panel_url = env.get("PTERODACTYL_PANEL_URL") or file_values.get("panel_url")
        api_key = env.get("PTERODACTYL_API_KEY") or file_values.get("api_key")

        timeout_raw = env.get("PTERODACTYL_TIMEOUT") or file_values.get("timeout")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except (TypeError, ValueError):
            logger.warning("无效的超时配置 %r，使用默认值 %.1f", timeout_raw, DEFAULT_TIMEOUT)
            timeout = DEFAULT_TIMEOUT

        verify_raw = env.get("PTERODACTYL_VERIFY_SSL")
        if verify_raw is None:
            verify_raw = file_values.get("verify_ssl")

        return cls(
            panel_url=str(panel_url).strip() if panel_url else None,
            api_key=str(api_key).strip() if api_key else None,
            timeout=timeout,
            verify_ssl=_parse_bool(verify_raw, default=True),
        )


def load_config_file(path: Path) -> dict[str, Any]:
    """读取 YAML 配置文件，不存在时返回空配置"""
    if not path.exists():
        logger.debug("配置文件不存在，仅使用环境变量: %s", path)
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("加载配置文件失败: %s", e)
        return {}

    if not isinstance(data, dict):
        logger.error("配置文件格式错误（应为映射）: %s", path)
        return {}

    section = data.get('pterodactyl', data)
    if not isinstance(section, dict):
        logger.error("配置文件中 pterodactyl 段格式错误: %s", path)
        return {}

    logger.info("已加载配置文件: %s", path)
    return section
