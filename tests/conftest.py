"""Pytest fixtures for docchat tests. Run from the project root: python -m pytest tests/ -v."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import List, Tuple

import pytest

# 保证从项目根目录运行时能 import docchat
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

# settings 在 import 时读取环境变量，测试数据放到临时目录
_TMP = Path(tempfile.mkdtemp(prefix="docchat-tests-"))
os.environ.setdefault("DOCCHAT_DB_PATH", str(_TMP / "docchat.db"))
os.environ.setdefault("DOCCHAT_UPLOAD_DIR", str(_TMP / "uploads"))
os.environ.setdefault("LLM_API_KEY", "")


class FakeLLM:
    """Stands in for LLMClient; records every (system, prompt) call."""

    def __init__(self, reply: str = "AI answer", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def chat_store(tmp_path_factory: pytest.TempPathFactory):
    from docchat.db import ChatStore

    # 数据库放在独立目录，测试自己的 tmp_path 可用作上传目录
    store = ChatStore(str(tmp_path_factory.mktemp("store") / "chats.db"))
    store.init_db()
    return store


@pytest.fixture
def upload_dir() -> Path:
    from docchat.config import settings

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    return settings.upload_dir
