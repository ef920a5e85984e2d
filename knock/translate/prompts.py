"""Instruction templates and prompt assembly for translation requests."""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from .context import ShellContext
from .types import RequestMode

COMMAND_TEMPLATE = "command"
EXPLAIN_TEMPLATE = "explain"

_MODE_TAGS = {
    RequestMode.STANDARD: "",
    RequestMode.VERBOSE: " [verbose]",
    RequestMode.ALT: " [alt]",
    RequestMode.EXPLAIN: "",
}

_MAX_TOKENS = {
    RequestMode.STANDARD: 256,
    RequestMode.VERBOSE: 512,
    RequestMode.ALT: 512,
    RequestMode.EXPLAIN: 512,
}

_ROOT_TAG = re.compile(r"^<([A-Za-z_][\w-]*)>")


class PromptValidationError(ValueError):
    """Raised when an instruction template fails validation checks."""


@dataclass(frozen=True)
class PromptDocument:
    """Represents a loaded instruction template and its source path."""

    content: str
    path: Path


class PromptLoader:
    """Resolve template names to files and apply lightweight validation."""

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        default_dir = Path(__file__).resolve().parent / "templates"
        self._search_dirs = [default_dir]
        if templates_dir:
            self._search_dirs.insert(0, Path(templates_dir).expanduser())

    def resolve(self, name: str) -> Path:
        for directory in self._search_dirs:
            for variant in self._variant_candidates(directory, name):
                if variant.is_file():
                    return variant

        search_roots = ", ".join(str(d) for d in self._search_dirs)
        raise FileNotFoundError(f"Template '{name}' was not found in: {search_roots}.")

    def load(self, name: str) -> PromptDocument:
        path = self.resolve(name)
        content = path.read_text(encoding="utf-8")
        self._validate(content, path)
        return PromptDocument(content=content, path=path)

    def _variant_candidates(self, base_dir: Path, name: str) -> Iterable[Path]:
        filename = name if "." in name else f"{name}.md"
        yield base_dir / filename
        if not filename.endswith(".txt"):
            yield base_dir / f"{name}.txt"

    def _validate(self, content: str, path: Path) -> None:
        stripped = content.strip()
        if not stripped:
            raise PromptValidationError(f"Template '{path}' is empty.")
        match = _ROOT_TAG.match(stripped)
        if not match:
            raise PromptValidationError(f"Template '{path}' must start with a root <tag>.")
        closing = f"</{match.group(1)}>"
        if not stripped.endswith(closing):
            raise PromptValidationError(
                f"Template '{path}' opens <{match.group(1)}> but does not end with {closing}."
            )


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    return PromptLoader().load(name).content


def mode_tag(mode: RequestMode) -> str:
    return _MODE_TAGS[mode]


def instructions_for(mode: RequestMode) -> str:
    """Return the system instructions for ``mode``.

    Standard, verbose and alt requests share one template that branches on the
    tag appended to the request; explain has its own.
    """
    if mode is RequestMode.EXPLAIN:
        return _load_template(EXPLAIN_TEMPLATE)
    return _load_template(COMMAND_TEMPLATE)


def max_tokens_for(mode: RequestMode) -> int:
    return _MAX_TOKENS[mode]


def build(context: ShellContext, query: str, mode: RequestMode) -> str:
    """Compose the user prompt: context block, blank line, tagged request."""
    return f"{context.as_prompt_context()}\n\n<request>{query}{mode_tag(mode)}</request>"
