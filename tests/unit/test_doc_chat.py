"""单元测试：prompt 组装、session 回退、隐身模式与 session_id。"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from docchat.errors import ExtractionError, GenerationError
from docchat.services import doc_chat as dc
from docchat.services.field_accumulator import IncomingTurn, UploadedFile

SYSTEM = "You are an assistant who answers based on uploaded documents."


def test_compose_with_document() -> None:
    composed = dc.compose_prompts("what total?", "a, b\n1, 2", "sales")
    assert composed.system == SYSTEM
    assert composed.prompt == (
        "The user uploaded the following document:\n\na, b\n1, 2\n\nUser query: what total?"
    )
    assert composed.user_text == "User query: what total?"


def test_compose_without_document_or_label() -> None:
    composed = dc.compose_prompts("hello {there}", None, "")
    assert composed.prompt == "hello {there}"
    assert composed.user_text == "hello {there}"


def test_compose_keeps_braces_in_document() -> None:
    composed = dc.compose_prompts("q", '{"k": "{v}"}', "")
    assert '{"k": "{v}"}' in composed.prompt


def test_new_session_ids_are_unique_and_timestamped() -> None:
    ids = {dc.new_session_id() for _ in range(200)}
    assert len(ids) == 200
    for sid in ids:
        millis, _, suffix = sid.partition("-")
        assert millis.isdigit() and len(suffix) == 8


def test_fallback_uses_previous_ai_response(chat_store, fake_llm) -> None:
    chat_store.append("s-1", "first", "u", None, "m", "R")
    turn = IncomingTurn(text="and then?", session_id="s-1")

    result = asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm))

    assert fake_llm.calls == [
        (SYSTEM, "The user uploaded the following document:\n\nR\n\nUser query: and then?")
    ]
    assert result.session_id == "s-1"


def test_fallback_uses_most_recent_turn(chat_store, fake_llm) -> None:
    chat_store.append("s-1", "one", "u", None, "m", "old")
    chat_store.append("s-1", "two", "u", None, "m", "new")
    asyncio.run(dc.run_doc_chat(IncomingTurn(text="q", session_id="s-1"), chat_store, fake_llm))
    assert "\n\nnew\n\n" in fake_llm.calls[0][1]


def test_no_file_no_record_sends_raw_query(chat_store, fake_llm) -> None:
    turn = IncomingTurn(text="plain question", session_id="unknown")
    asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm))
    assert fake_llm.calls == [(SYSTEM, "plain question")]


def test_uploaded_file_takes_precedence_over_fallback(chat_store, fake_llm, tmp_path: Path) -> None:
    chat_store.append("s-1", "first", "u", None, "m", "R")
    turn = IncomingTurn(
        text="q",
        session_id="s-1",
        file_name="data",
        upload=UploadedFile(filename="data.csv", data=b"a,b\n1,2"),
    )
    result = asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm, tmp_path))
    assert fake_llm.calls[0][1] == "The user uploaded the following document:\n\na, b\n1, 2\n\nUser query: q"
    assert result.user_text == "User query: q"
    assert turn.upload is None
    assert list(tmp_path.iterdir()) == []


def test_persists_one_record_without_document_body(chat_store, fake_llm, tmp_path: Path) -> None:
    turn = IncomingTurn(
        text="q",
        model_name="gemini",
        user_id="u1",
        file_name="notes",
        upload=UploadedFile(filename="notes.txt", data=b"secret body"),
    )
    result = asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm, tmp_path))

    records = chat_store.list_session(result.session_id)
    assert len(records) == 1
    rec = records[0]
    assert rec.user_text == "User query: q"
    assert "secret body" not in rec.user_text
    assert rec.ai_response == "AI answer"
    assert (rec.user_id, rec.model, rec.file_name) == ("u1", "gemini", "notes")
    assert result.persisted is True


def test_incognito_writes_nothing_but_still_answers(chat_store, fake_llm) -> None:
    turn = IncomingTurn(text="q", incognito=True)
    result = asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm))
    assert result.ai_text == "AI answer"
    assert result.persisted is False
    assert result.session_id
    assert chat_store.list_sessions() == []


def test_generated_session_id_matches_persisted_record(chat_store, fake_llm) -> None:
    result = asyncio.run(dc.run_doc_chat(IncomingTurn(text="q"), chat_store, fake_llm))
    assert result.session_id
    assert [r.session_id for r in chat_store.list_session(result.session_id)] == [result.session_id]


def test_generation_failure_persists_nothing(chat_store, fake_llm) -> None:
    fake_llm.error = GenerationError("down")
    with pytest.raises(GenerationError):
        asyncio.run(dc.run_doc_chat(IncomingTurn(text="q"), chat_store, fake_llm))
    assert chat_store.list_sessions() == []


def test_extraction_failure_skips_generation(chat_store, fake_llm, tmp_path: Path) -> None:
    turn = IncomingTurn(text="q", upload=UploadedFile(filename="bad.xlsx", data=b"garbage"))
    with pytest.raises(ExtractionError):
        asyncio.run(dc.run_doc_chat(turn, chat_store, fake_llm, tmp_path))
    assert fake_llm.calls == []
    assert turn.upload is None
    assert list(tmp_path.iterdir()) == []
