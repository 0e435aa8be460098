"""Contextual Memory - Bounded Turn Log Plus Context Assembly.

One ContextualMemory belongs to one session. It keeps:

    - a bounded window of Turns, oldest evicted first
    - a small key/value store of remembered facts
    - the knowledge sources used to build the "System Knowledge" block

Retrieval is keyed on the most recent turns plus the current prompt, so a
follow-up like "and for staging?" still finds what the earlier turns were
about.
"""

from __future__ import annotations

from collections import deque

from loguru import logger

from .domain_value import Turn
from .knowledge import FeatureTaxonomy, KnowledgeRetriever, NoRetrieval

DEFAULT_MAX_TURNS = 20


class ContextualMemory:
    """Session Memory.

    Args:
        max_turns: Window size. Adding turn ``max_turns + 1`` evicts the oldest.
        taxonomy: Static feature knowledge included in every context
        retriever: Optional retrieval over external knowledge
        retrieval_history_turns: How many recent turns key the retrieval query

    Not safe for concurrent commands on the same session; the session
    service serializes those.
    """

    def __init__(
        self,
        max_turns: int = DEFAULT_MAX_TURNS,
        *,
        taxonomy: FeatureTaxonomy | None = None,
        retriever: KnowledgeRetriever | None = None,
        retrieval_history_turns: int = 6,
    ):
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")
        self.max_turns = max_turns
        self.taxonomy = taxonomy or FeatureTaxonomy()
        self.retriever: KnowledgeRetriever = retriever or NoRetrieval()
        self.retrieval_history_turns = max(0, retrieval_history_turns)
        self._turns: deque[Turn] = deque(maxlen=max_turns)
        self._facts: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Turn window
    # ------------------------------------------------------------------

    def add_turn(self, turn: Turn) -> None:
        if len(self._turns) == self.max_turns:
            logger.debug("Memory window full ({}), evicting oldest turn", self.max_turns)
        self._turns.append(turn)

    def get_history(self) -> tuple[Turn, ...]:
        """Snapshot of the window, oldest first. Later appends don't affect it."""
        return tuple(self._turns)

    def recent(self, n: int) -> tuple[Turn, ...]:
        if n <= 0:
            return ()
        return tuple(self._turns)[-n:]

    def clear(self) -> None:
        self._turns.clear()
        logger.debug("Memory cleared")

    def __len__(self) -> int:
        return len(self._turns)

    # ------------------------------------------------------------------
    # Remembered facts
    # ------------------------------------------------------------------

    def remember(self, key: str, value: str) -> None:
        self._facts[key] = value
        logger.debug("Stored long-term fact '{}'", key)

    def recall(self, key: str) -> str | None:
        return self._facts.get(key)

    def forget(self, key: str) -> bool:
        return self._facts.pop(key, None) is not None

    @property
    def facts(self) -> dict[str, str]:
        return dict(self._facts)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def assemble_context(self, current_prompt: str) -> str:
        """Build the knowledge block sent ahead of the user's request.

        Sections, each omitted when empty: feature taxonomy, remembered
        facts, retrieved knowledge. A failing retriever contributes nothing.
        """
        sections: list[str] = []

        taxonomy = self.taxonomy.render()
        if taxonomy:
            sections.append(taxonomy)

        if self._facts:
            sections.append("Remembered facts:\n" + "\n".join(f"- {k}: {v}" for k, v in self._facts.items()))

        query = "\n".join([*(t.content for t in self.recent(self.retrieval_history_turns)), current_prompt])
        try:
            retrieved = await self.retriever.query(query)
        except Exception as exc:
            logger.warning("Knowledge retrieval failed ({}: {}), continuing without it", type(exc).__name__, exc)
            retrieved = ""
        if retrieved:
            sections.append("Relevant knowledge:\n" + retrieved)

        return "\n\n".join(sections)


__all__ = ["ContextualMemory", "DEFAULT_MAX_TURNS"]
