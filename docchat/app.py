"""FastAPI application entrypoint for docchat."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docchat.__version__ import __version__
from docchat.config import settings
from docchat.db import ChatStore
from docchat.errors import DocChatError
from docchat.routers import doc_chat as doc_chat_router
from docchat.services.llm_service import LLMClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时初始化 DB、上传目录与 LLM 客户端；关闭时释放连接池。"""
    store = ChatStore(settings.db_path)
    store.init_db()
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    llm_client = LLMClient.from_settings(settings)
    app.state.chat_store = store
    app.state.llm_client = llm_client
    logger.info("docchat started | db=%s | llm_model=%s", settings.db_path, settings.llm_model)
    try:
        yield
    finally:
        await llm_client.aclose()
        logger.info("docchat stopped")


app = FastAPI(title="docchat Backend", version=__version__, lifespan=lifespan)


# 统一错误响应：不暴露堆栈、路径、配置或密钥
def _safe_detail(exc: Exception) -> str:
    if hasattr(exc, "detail"):
        d = getattr(exc, "detail")
        if isinstance(d, str):
            return d
        if isinstance(d, list):
            return "Validation error"
    return "Internal server error"


@app.exception_handler(HTTPException)
async def http_exception_handler(_r: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": _safe_detail(exc)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_r: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation error", "errors": exc.errors()},
    )


@app.exception_handler(DocChatError)
async def doc_chat_exception_handler(_r: Request, exc: DocChatError) -> JSONResponse:
    logger.error("Request failed | %s: %s", type(exc).__name__, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": _safe_detail(exc)},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(_r: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    """健康检查，含 LLM 配置诊断（不暴露 API Key）。"""
    return {
        "status": "ok",
        "llm_configured": bool(settings.llm_api_key) and bool(settings.llm_base_url),
        "llm_model": settings.llm_model,
    }


app.include_router(doc_chat_router.router)
