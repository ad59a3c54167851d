"""Configuration helpers for the docchat backend."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# 优先从项目根目录加载 .env，确保启动时能读取 LLM 等配置
_DOCCHAT_ROOT = Path(__file__).resolve().parent.parent
_env_file = _DOCCHAT_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"


def _env_list(name: str, default: str) -> List[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Simple settings holder.

    Values are read from the environment once, at construction time.
    """

    def __init__(self) -> None:
        base = _DOCCHAT_ROOT

        # SQLite 数据库路径（默认放在项目根目录下的 data 子目录）
        db_path_env = os.environ.get("DOCCHAT_DB_PATH")
        if db_path_env:
            self.db_path = str(Path(db_path_env).expanduser())
        else:
            self.db_path = str(base / "data" / "docchat.db")

        # 上传文件的临时目录，每个请求结束后删除自己的文件
        upload_dir_env = os.environ.get("DOCCHAT_UPLOAD_DIR")
        if upload_dir_env:
            self.upload_dir = Path(upload_dir_env).expanduser().resolve()
        else:
            self.upload_dir = base / "data" / "uploads"

        # ==== LLM（OpenAI 兼容 API，默认 Gemini）配置 ====
        # API Key：优先级 LLM_API_KEY > GEMINI_API_KEY > GROQ_API_KEY
        self.llm_api_key = (
            os.environ.get("LLM_API_KEY")
            or os.environ.get("GEMINI_API_KEY")
            or os.environ.get("GROQ_API_KEY")
            or ""
        )
        # Groq: https://api.groq.com/openai/v1 + llama3-70b-8192
        self.llm_base_url = os.environ.get(
            "DOCCHAT_LLM_BASE_URL",
            GEMINI_OPENAI_BASE_URL,
        ).rstrip("/")
        self.llm_model = os.environ.get("DOCCHAT_LLM_MODEL", "gemini-1.5-flash-8b")
        self.llm_temperature = float(os.environ.get("DOCCHAT_LLM_TEMPERATURE", "0.9") or "0.9")
        self.llm_max_tokens = int(os.environ.get("DOCCHAT_LLM_MAX_TOKENS", "2000") or "2000")
        self.llm_timeout_seconds = float(os.environ.get("DOCCHAT_LLM_TIMEOUT_SECONDS", "120") or "120")

        # ==== LLM 重试 ====
        # 默认只调用一次，失败直接返回错误
        self.llm_max_retries = int(os.environ.get("DOCCHAT_LLM_MAX_RETRIES", "1") or "1")
        self.llm_retry_min_wait = float(os.environ.get("DOCCHAT_LLM_RETRY_MIN_WAIT", "1") or "1")
        self.llm_retry_max_wait = float(os.environ.get("DOCCHAT_LLM_RETRY_MAX_WAIT", "10") or "10")

        # ==== 文本提取 ====
        self.ocr_lang = os.environ.get("DOCCHAT_OCR_LANG", "eng")

        # ==== HTTP ====
        self.cors_origins = _env_list("DOCCHAT_CORS_ORIGINS", "http://localhost:3000")
        self.port = int(os.environ.get("PORT", "8000") or "8000")


settings = Settings()
