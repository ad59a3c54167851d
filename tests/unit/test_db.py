"""单元测试：ChatStore 追加与查询。"""

from __future__ import annotations


def test_append_and_latest(chat_store) -> None:
    assert chat_store.latest_for_session("s") is None
    chat_store.append("s", "q1", "u", "doc", "m", "a1")
    chat_store.append("s", "q2", "u", None, "m", "a2")
    chat_store.append("other", "x", "u", None, "m", "ax")

    latest = chat_store.latest_for_session("s")
    assert latest is not None
    assert latest.ai_response == "a2"
    assert latest.file_name is None


def test_list_session_oldest_first(chat_store) -> None:
    chat_store.append("s", "q1", "u", "doc", "m", "a1")
    chat_store.append("s", "q2", "u", None, "m", "a2")
    records = chat_store.list_session("s")
    assert [r.user_text for r in records] == ["q1", "q2"]
    assert records[0].to_dict()["file_name"] == "doc"
    assert records[0].timestamp


def test_list_sessions_summaries(chat_store) -> None:
    chat_store.append("s1", "first", "alice", None, "m", "a")
    chat_store.append("s2", "other", "bob", None, "m", "b")
    chat_store.append("s1", "second", "alice", None, "m", "c")

    rows = chat_store.list_sessions()
    assert [r["session_id"] for r in rows] == ["s1", "s2"]
    assert rows[0]["turns"] == 2
    assert rows[0]["first_user_text"] == "first"

    only_bob = chat_store.list_sessions(user_id="bob")
    assert [r["session_id"] for r in only_bob] == ["s2"]
    assert chat_store.list_sessions(limit=1, offset=1)[0]["session_id"] == "s2"


def test_store_file_lives_outside_test_tmp_dir(chat_store, tmp_path) -> None:
    chat_store.append("s", "q", "u", None, "m", "a")
    assert list(tmp_path.iterdir()) == []
