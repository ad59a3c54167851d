"""Run the docchat backend: ``python -m docchat``."""

from __future__ import annotations

import logging

import uvicorn

from docchat.config import settings


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("docchat.app:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
