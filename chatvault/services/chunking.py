"""
Chunking for the embedding size limit.

A turn is the atomic unit: chunks are contiguous runs of whole turns, packed
greedily in conversation order.
"""

from typing import List, Sequence

from chatvault.models.chat import Turn

TURN_SEPARATOR = "\n\n"


def turn_text(turn: Turn) -> str:
    """Text of a single turn: prompt then response."""
    return f"{turn['prompt']}\n{turn['response']}"


def combine_chat_text(turns: Sequence[Turn]) -> str:
    """Combine all prompts and responses into the text that gets embedded."""
    return TURN_SEPARATOR.join(turn_text(turn) for turn in turns)


def split_turns_for_embedding(turns: Sequence[Turn], max_chars: int) -> List[List[Turn]]:
    """
    Split turns into the fewest chunks whose combined text fits max_chars.

    Greedy in order: keep adding turns to the current chunk until the next one
    would overflow it, then start a new chunk. A turn that is larger than
    max_chars on its own becomes a chunk by itself.

    Args:
        turns: Conversation turns, in order
        max_chars: Ceiling for the combined text of one chunk

    Returns:
        Chunks whose concatenation is exactly the input sequence
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if not turns:
        return []

    if len(combine_chat_text(turns)) <= max_chars:
        return [list(turns)]

    chunks: List[List[Turn]] = []
    current: List[Turn] = []
    current_len = 0

    for turn in turns:
        size = len(turn_text(turn))
        # Joining onto a non-empty chunk costs the separator too
        added = size if not current else size + len(TURN_SEPARATOR)
        if current and current_len + added > max_chars:
            chunks.append(current)
            current = [turn]
            current_len = size
        else:
            current.append(turn)
            current_len += added

    if current:
        chunks.append(current)
    return chunks


def embedding_input(turns: Sequence[Turn], max_chars: int) -> str:
    """Text sent to the embedding model for one chunk, capped at max_chars."""
    text = combine_chat_text(turns)
    if len(text) > max_chars:
        # Only a single oversized turn can get here
        return text[:max_chars]
    return text
