"""HTTP API router for /doc-chat and the chat history endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from docchat.__version__ import __version__
from docchat.db import ChatStore
from docchat.services.doc_chat import run_doc_chat
from docchat.services.field_accumulator import accumulate_fields
from docchat.services.llm_service import LLMClient
from docchat.services.multipart_stream import boundary_from_content_type, iter_form_parts

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chat_store(request: Request) -> ChatStore:
    return request.app.state.chat_store


def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.llm_client


class DocChatResponse(BaseModel):
    userText: str
    aiText: str
    fileName: str
    session_id: str


class SessionSummary(BaseModel):
    session_id: str
    user_id: str
    turns: int
    last_timestamp: str
    first_user_text: Optional[str] = None


class ChatRecordOut(BaseModel):
    session_id: str
    timestamp: str
    user_text: str
    user_id: str
    file_name: Optional[str] = None
    model: str
    ai_response: str


@router.get("/version")
def get_version() -> dict:
    return {"version": __version__}


@router.post("/doc-chat", response_model=DocChatResponse)
async def doc_chat_endpoint(
    request: Request,
    store: ChatStore = Depends(get_chat_store),
    llm: LLMClient = Depends(get_llm_client),
) -> DocChatResponse:
    """Answer a query about an uploaded document (multipart form).

    Fields: text, model, user_id, fileName, sessionId, incognito, file.
    Without a file, the previous answer of ``sessionId`` serves as the document.
    """
    boundary = boundary_from_content_type(request.headers.get("content-type"))
    turn = await accumulate_fields(iter_form_parts(boundary, request.stream()))
    result = await run_doc_chat(turn, store, llm)
    logger.info(
        "doc-chat done | session_id=%s | persisted=%s",
        result.session_id,
        result.persisted,
    )
    return DocChatResponse(
        userText=result.user_text,
        aiText=result.ai_text,
        fileName=result.file_name,
        session_id=result.session_id,
    )


@router.get("/sessions", response_model=List[SessionSummary])
async def get_sessions(
    user_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    store: ChatStore = Depends(get_chat_store),
) -> List[SessionSummary]:
    rows = await run_in_threadpool(store.list_sessions, user_id, limit, offset)
    return [SessionSummary(**r) for r in rows]


@router.get("/sessions/{session_id}", response_model=List[ChatRecordOut])
async def get_session_detail(
    session_id: str,
    store: ChatStore = Depends(get_chat_store),
) -> List[ChatRecordOut]:
    records = await run_in_threadpool(store.list_session, session_id)
    if not records:
        raise HTTPException(status_code=404, detail="session not found")
    return [ChatRecordOut(**r.to_dict()) for r in records]
