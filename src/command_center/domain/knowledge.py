"""Knowledge Layer - Static Domain Knowledge and Retrieval.

Two sources feed the "System Knowledge" block of every prompt:

    - FeatureTaxonomy: the application's feature catalog, loaded from
      feature_taxonomy.json and rendered as a knowledge-base string so the
      model knows which features ``navigateTo``/``runFeatureWithInput`` can
      target.
    - KnowledgeRetriever: pluggable retrieval keyed on recent history plus
      the current prompt. NoRetrieval is the default; KeywordRetriever ranks
      in-process documents by term overlap.
"""

from __future__ import annotations

import json
import re
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Feature(BaseModel):
    """One application feature the model can navigate to or run."""

    id: str = Field(min_length=1)
    name: str
    description: str
    inputs: str = ""
    category: str | None = None

    model_config = ConfigDict(frozen=True)


class FeatureTaxonomy(BaseModel):
    """Validated feature catalog."""

    features: tuple[Feature, ...] = ()

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_unique_ids(self) -> FeatureTaxonomy:
        ids = [feature.id for feature in self.features]
        if len(ids) != len(set(ids)):
            duplicates = sorted({x for x in ids if ids.count(x) > 1})
            raise ValueError(f"Duplicate feature ids: {duplicates}")
        return self

    @classmethod
    def from_json_file(cls, path: Path) -> FeatureTaxonomy:
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.model_validate(data)

    def get(self, feature_id: str) -> Feature | None:
        for feature in self.features:
            if feature.id == feature_id:
                return feature
        return None

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(feature.id for feature in self.features)

    def render(self) -> str:
        """Render the taxonomy as the knowledge-base block of the prompt."""
        if not self.features:
            return ""
        categories = sorted({f.category for f in self.features if f.category})
        lines = ["Available features" + (f" (categories: {', '.join(categories)}):" if categories else ":")]
        lines.extend(
            f"- {f.name} (ID: {f.id}, Category: {f.category or 'N/A'}): {f.description} Expected Inputs: {f.inputs or 'none'}"
            for f in self.features
        )
        return "\n".join(lines)


@runtime_checkable
class KnowledgeRetriever(Protocol):
    """Capability for retrieving context relevant to a query.

    Returns an empty string when nothing is relevant. Failures may raise;
    ContextualMemory logs them and carries on without retrieved context.
    """

    async def query(self, text: str) -> str: ...


class NoRetrieval:
    """Retriever that never finds anything."""

    async def query(self, text: str) -> str:
        return ""


class KnowledgeDocument(BaseModel):
    """A document indexed by KeywordRetriever."""

    id: str
    content: str
    source: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def render(self) -> str:
        return f"From {self.source}: {self.content}" if self.source else self.content


_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

# Words too common to say anything about relevance.
_STOPWORDS = frozenset(
    "a an and are as at be by can do for from how i in is it me my of on or please show the this to what with you".split()
)


def tokenize(text: str) -> set[str]:
    return {token for token in _TOKEN_PATTERN.findall(text.lower()) if token not in _STOPWORDS and len(token) > 1}


class KeywordRetriever:
    """In-process retriever ranking documents by query-term overlap.

    Args:
        documents: Initial documents to index
        top_k: Maximum number of documents returned per query
        min_score: Minimum number of shared terms for a document to count
    """

    def __init__(self, documents: list[KnowledgeDocument] | None = None, *, top_k: int = 3, min_score: int = 1):
        self.top_k = top_k
        self.min_score = min_score
        self._write_lock = threading.Lock()
        self._index: dict[str, tuple[KnowledgeDocument, frozenset[str]]] = {}
        for document in documents or []:
            self.index(document)

    def index(self, document: KnowledgeDocument) -> None:
        """Add or replace a document by id."""
        with self._write_lock:
            self._index = {**self._index, document.id: (document, frozenset(tokenize(document.content)))}
        logger.debug("Indexed knowledge document '{}'", document.id)

    def remove(self, document_id: str) -> bool:
        with self._write_lock:
            if document_id not in self._index:
                return False
            self._index = {k: v for k, v in self._index.items() if k != document_id}
        return True

    def __len__(self) -> int:
        return len(self._index)

    def search(self, text: str) -> list[KnowledgeDocument]:
        """Documents sharing the most terms with ``text``, best first."""
        terms = tokenize(text)
        if not terms:
            return []
        scored = [(len(terms & doc_terms), document) for document, doc_terms in self._index.values()]
        ranked = sorted((pair for pair in scored if pair[0] >= self.min_score), key=lambda pair: pair[0], reverse=True)
        return [document for _, document in ranked[: self.top_k]]

    async def query(self, text: str) -> str:
        return "\n".join(document.render() for document in self.search(text))


__all__ = [
    "Feature",
    "FeatureTaxonomy",
    "KeywordRetriever",
    "KnowledgeDocument",
    "KnowledgeRetriever",
    "NoRetrieval",
    "tokenize",
]
