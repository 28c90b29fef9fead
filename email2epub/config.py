"""
配置模块 (Configuration)
========================

从环境变量和 .env 文件加载运行配置：缓存目录、下载并发与超时、书籍默认元数据。
所有变量都带 ``EMAIL2EPUB_`` 前缀，例如 ``EMAIL2EPUB_DOWNLOAD_CONCURRENCY=5``。
"""

from typing import Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """
    应用配置类，继承自 Pydantic BaseSettings。

    属性:
        IMAGES_DIR: 远程图片下载缓存目录
        ATTACHMENTS_DIR: 邮件附件导出目录
        DOWNLOAD_CONCURRENCY: 每封邮件的并行下载数，至少为 1
        DOWNLOAD_TIMEOUT: 单个 URL 的超时秒数（含 HEAD 检查）
        DEFAULT_*: 命令行的书名、作者、输出文件默认值
        BOOK_LANGUAGE: 写入 EPUB 元数据的语言标签
        USER_AGENT: 图片请求携带的 User-Agent
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL2EPUB_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    IMAGES_DIR: str = "images"
    ATTACHMENTS_DIR: str = "attachments"
    DOWNLOAD_CONCURRENCY: int = 3
    DOWNLOAD_TIMEOUT: float = 120.0
    DEFAULT_TITLE: str = "Emails"
    DEFAULT_AUTHOR: str = "Email to Epub"
    DEFAULT_OUTPUT: str = "output.epub"
    BOOK_LANGUAGE: str = "en"
    USER_AGENT: str = "email2epub/1.0"

    @field_validator("DOWNLOAD_CONCURRENCY")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("DOWNLOAD_CONCURRENCY must be at least 1")
        return v

    @field_validator("DOWNLOAD_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("DOWNLOAD_TIMEOUT must be positive")
        return v


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """获取全局配置单例，首次调用时加载。"""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """清除配置单例（测试用），下次 ``get_settings()`` 会重新加载。"""
    global _settings_instance
    _settings_instance = None
