"""Prompt resolution and replacement rules applied to transcriptions."""

from __future__ import annotations

from typing import Iterable, Optional

from config import NoPrompt, PromptConfig, RawPrompt, VocabularyPrompt

VOCABULARY_SEPARATOR = ", "


def initial_prompt(prompt: PromptConfig) -> Optional[str]:
    """Context string handed to the model, if any."""
    if isinstance(prompt, VocabularyPrompt):
        return VOCABULARY_SEPARATOR.join(prompt.vocabulary) if prompt.vocabulary else None
    if isinstance(prompt, RawPrompt):
        return prompt.prompt
    if isinstance(prompt, NoPrompt):
        return None
    raise TypeError(f"unsupported prompt config: {prompt!r}")


class TextPostProcessor:
    """Ordered replacement rules.

    Rules run one after another in declaration order, each scanning left to
    right. Text produced by an earlier rule is masked, so a later rule can
    neither match inside it nor across its edges.
    """

    def __init__(self, replacements: Iterable[tuple[str, str]] = ()) -> None:
        self._rules: list[tuple[str, str]] = []
        seen: set[str] = set()
        for target, replacement in replacements:
            if target and target not in seen:
                seen.add(target)
                self._rules.append((target, replacement))

    def __call__(self, text: str) -> str:
        # (piece, substituted) segments; substituted pieces are never rescanned
        segments: list[tuple[str, bool]] = [(text.strip(), False)]
        for target, replacement in self._rules:
            updated: list[tuple[str, bool]] = []
            for piece, substituted in segments:
                if substituted or target not in piece:
                    updated.append((piece, substituted))
                    continue
                parts = piece.split(target)
                for i, part in enumerate(parts):
                    if i:
                        updated.append((replacement, True))
                    if part:
                        updated.append((part, False))
            segments = updated
        return "".join(piece for piece, _ in segments)


def apply_replacements(text: str, replacements: Iterable[tuple[str, str]]) -> str:
    return TextPostProcessor(replacements)(text)
