"""Consume multipart parts until every required field of a doc-chat turn is in.

The accumulator is a small state machine: ``feed`` one part, ask
``is_complete``, repeat. ``accumulate_fields`` drives it over an async part
stream and stops pulling parts as soon as the turn is complete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, FrozenSet, Optional, Set

from docchat.errors import MalformedRequestError
from docchat.services.multipart_stream import FormPart

logger = logging.getLogger(__name__)

# form field name -> IncomingTurn attribute
TEXT_FIELDS: Dict[str, str] = {
    "text": "text",
    "model": "model_name",
    "user_id": "user_id",
    "fileName": "file_name",
    "sessionId": "session_id",
}
REQUIRED_FIELDS: FrozenSet[str] = frozenset(
    {"text", "model", "user_id", "fileName", "file", "incognito"}
)


@dataclass
class UploadedFile:
    """The file part of a request; ``filename`` is the transport filename."""

    filename: str
    data: bytes


@dataclass
class IncomingTurn:
    text: str = ""
    model_name: str = ""
    user_id: str = ""
    file_name: str = ""
    session_id: str = ""
    incognito: bool = False
    upload: Optional[UploadedFile] = None


class FieldAccumulator:
    """Collect the fields of one turn from parts fed in arrival order."""

    def __init__(self) -> None:
        self.turn = IncomingTurn()
        self.seen: Set[str] = set()

    def feed(self, part: FormPart) -> None:
        """Record one part. Raises on a malformed part; callers skip it."""
        if part.is_file:
            # 只保留最后一个文件
            self.turn.upload = UploadedFile(filename=part.filename or "", data=part.data)
            self.seen.add("file")
            return

        if not part.name:
            raise ValueError("form part without a field name")
        value = part.text()
        if part.name == "incognito":
            self.turn.incognito = value == "true"
        elif part.name in TEXT_FIELDS:
            setattr(self.turn, TEXT_FIELDS[part.name], value)
        else:
            logger.debug("Ignoring unknown form field %r", part.name)
            return
        self.seen.add(part.name)

    def is_complete(self) -> bool:
        return REQUIRED_FIELDS <= self.seen

    def to_turn(self) -> IncomingTurn:
        return self.turn


async def accumulate_fields(parts: AsyncIterator[FormPart]) -> IncomingTurn:
    """Pull parts until the turn is complete or the stream ends.

    A part that fails to parse is logged and skipped. A stream-level failure
    ends consumption; the fields gathered so far are kept.
    """
    acc = FieldAccumulator()
    try:
        async for part in parts:
            try:
                acc.feed(part)
            except ValueError as exc:
                logger.warning("Skipping malformed form part %r: %s", part.name, exc)
                continue
            if acc.is_complete():
                logger.info("All required fields received, stop reading parts")
                break
    except MalformedRequestError as exc:
        logger.warning("Failed to parse multipart body: %s", exc)
    finally:
        aclose = getattr(parts, "aclose", None)
        if aclose is not None:
            await aclose()

    turn = acc.to_turn()
    logger.info(
        "Fields collected | seen=%s | has_file=%s | session_id=%s",
        sorted(acc.seen),
        turn.upload is not None,
        turn.session_id or "none",
    )
    return turn
