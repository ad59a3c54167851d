"""The doc-chat turn: document text (or the session's last answer) + query -> answer.

Pipeline for one request, strictly sequential:

- extract text from the uploaded file, or fall back to the previous AI
  response of the session when no file was sent;
- compose the generation prompt and the user text that gets recorded;
- call the generation backend;
- persist the turn unless the request is incognito.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

from docchat.db import ChatStore
from docchat.errors import PersistenceError
from docchat.prompts import load_prompt
from docchat.services.extraction import extract_text
from docchat.services.field_accumulator import IncomingTurn
from docchat.services.llm_service import LLMClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComposedPrompt:
    system: str
    prompt: str
    user_text: str


@dataclass(frozen=True)
class DocChatResult:
    user_text: str
    ai_text: str
    file_name: str
    session_id: str
    persisted: bool


def new_session_id() -> str:
    """Timestamp-derived session id: ``<epoch ms>-<8 hex>``."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def compose_prompts(text: str, extracted: Optional[str], file_name: str) -> ComposedPrompt:
    """Build the generation prompt and the user text to record.

    The recorded text never contains the document body.
    """
    tpl = load_prompt("doc_chat")
    if extracted:
        prompt = tpl.get("document_prompt", document=extracted, text=text)
    else:
        prompt = text
    user_text = tpl.get("recorded_user_text", text=text) if file_name else text
    return ComposedPrompt(system=tpl.system(), prompt=prompt, user_text=user_text)


async def resolve_fallback_content(store: ChatStore, session_id: str) -> Optional[str]:
    """Previous AI response of ``session_id`` used as document context, if any."""
    try:
        record = await run_in_threadpool(store.latest_for_session, session_id)
    except sqlite3.Error as exc:
        logger.exception("Fallback lookup failed | session_id=%s", session_id)
        raise PersistenceError(f"fallback lookup failed: {exc}") from exc
    if record is None:
        logger.info("No previous turn to fall back on | session_id=%s", session_id)
        return None
    logger.info(
        "Using previous AI response as document context | session_id=%s | chars=%d",
        session_id,
        len(record.ai_response),
    )
    return record.ai_response


async def run_doc_chat(
    turn: IncomingTurn,
    store: ChatStore,
    llm: LLMClient,
    upload_dir: Optional[Path] = None,
) -> DocChatResult:
    # 本次请求只生成一次 session_id，响应与落库共用
    session_id = turn.session_id or new_session_id()

    extracted: Optional[str] = None
    if turn.upload is not None:
        upload = turn.upload
        try:
            extracted = await extract_text(upload.filename, upload.data, upload_dir)
        finally:
            # 请求结束前释放上传内容
            turn.upload = None
    elif turn.session_id:
        extracted = await resolve_fallback_content(store, turn.session_id)

    composed = compose_prompts(turn.text, extracted, turn.file_name)
    ai_text = await llm.generate(composed.system, composed.prompt)
    logger.info("Generation done | session_id=%s | chars=%d", session_id, len(ai_text))

    persisted = False
    if not turn.incognito:
        try:
            await run_in_threadpool(
                store.append,
                session_id,
                composed.user_text,
                turn.user_id,
                turn.file_name or None,
                turn.model_name,
                ai_text,
            )
        except sqlite3.Error as exc:
            logger.exception("Failed to persist chat | session_id=%s", session_id)
            raise PersistenceError(f"failed to persist chat: {exc}") from exc
        persisted = True

    return DocChatResult(
        user_text=composed.user_text,
        ai_text=ai_text,
        file_name=turn.file_name,
        session_id=session_id,
        persisted=persisted,
    )
