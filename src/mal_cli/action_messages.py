"""Text for the error popup: what failed, why, and what to try next."""

from __future__ import annotations

SENTENCE_ENDINGS = (".", "!", "?")


def _sentence(text: str) -> str:
    text = text.strip()
    if text and not text.endswith(SENTENCE_ENDINGS):
        text += "."
    return text


def build_actionable_error(action: str, *, next_step: str, why: str | None = None) -> str:
    """Compose "Could not <action>." plus optional reason and a next-step line.

    >>> build_actionable_error("load seasonal anime", why="timed out", next_step="retry")
    'Could not load seasonal anime.\\nWhy: timed out.\\nNext step: retry.'
    """
    parts = [f"Could not {action.strip()}."]
    if why:
        parts.append(f"Why: {_sentence(why)}")
    parts.append(f"Next step: {_sentence(next_step)}")
    return "\n".join(parts)


def build_play_error_message(title: str, reason: str) -> str:
    return build_actionable_error(
        f"play {title}",
        why=reason,
        next_step="check that the player command is installed or pick another episode",
    )


def build_list_update_error(title: str, reason: str) -> str:
    return build_actionable_error(f"update {title} on your list", why=reason, next_step="retry from the detail popup")


__all__ = [
    "build_actionable_error",
    "build_list_update_error",
    "build_play_error_message",
]
