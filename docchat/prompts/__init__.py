"""Prompt template loader.

Loads YAML prompt templates from the ``docchat/prompts/`` directory and
renders named sections with ``{variable}`` substitution.

Usage::

    from docchat.prompts import load_prompt

    tpl = load_prompt("doc_chat")
    system_msg = tpl.system()
    user_msg = tpl.get("document_prompt", document="...", text="...")
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Dict

import yaml

_PROMPTS_DIR = Path(__file__).resolve().parent


class _SafeDict(dict):
    """Leave unknown ``{placeholders}`` untouched instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class PromptTemplate:
    """A loaded prompt file: a mapping of section name to template string."""

    def __init__(self, name: str, sections: Dict[str, str]) -> None:
        self.name = name
        self._sections = sections

    def get(self, key: str, **kwargs: object) -> str:
        if key not in self._sections:
            raise KeyError(f"Prompt {self.name!r} has no section {key!r}")
        # 只替换模板中的占位符；变量值本身不会再被解析
        return str(self._sections[key]).format_map(_SafeDict(kwargs))

    def system(self, **kwargs: object) -> str:
        return self.get("system", **kwargs)


@functools.lru_cache(maxsize=None)
def load_prompt(name: str) -> PromptTemplate:
    """Load (and cache) the YAML prompt template ``<name>.yaml``."""
    path = _PROMPTS_DIR / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Prompt template must be a YAML mapping: {path}")
    return PromptTemplate(name, data)
