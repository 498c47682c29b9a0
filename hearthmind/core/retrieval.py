########## Retrieval Engine ##########
# Recency + importance + relevance scoring over one character's memory stream.

from __future__ import annotations

from datetime import datetime
from typing import List

from . import config
from .memory import MemoryStore
from .types import MemoryRecord, RetrievedMemory, scoring_importance


def recency_score(record: MemoryRecord, now: datetime) -> float:
    """Exponential decay on hours since the record was last accessed."""

    hours = (now - record.last_access).total_seconds() / 3600.0
    if hours < 0:
        hours = 0.0
    return config.RECENCY_DECAY ** hours


def importance_score(record: MemoryRecord) -> float:
    return scoring_importance(record.importance) / 10.0


def relevance_score(query: str, content: str) -> float:
    """Share of query tokens (length > 1) found anywhere in the content."""

    # 1 Lowercase whitespace tokens; short tokens never match but still count. # steps
    tokens = query.lower().split()
    if not any(len(token) > 1 for token in tokens):
        return 0.0
    lowered = content.lower()
    matches = sum(1 for token in tokens if len(token) > 1 and token in lowered)
    return matches / len(tokens)


def retrieve(store: MemoryStore, query: str, top_k: int = config.CHAT_RETRIEVAL_TOP_K) -> List[RetrievedMemory]:
    """Rank every record against the query and touch the ones returned."""

    # 1 Score all records with equal unit weights.                             # steps
    # 2 Stable sort keeps creation order on ties, then cut to top_k.          # steps
    # 3 Refresh last-access on the returned records and persist.              # steps
    records = store.all()
    if not records or top_k <= 0:
        return []
    now = store.clock()
    scored: List[RetrievedMemory] = []
    for record in records:
        recency = recency_score(record, now)
        importance = importance_score(record)
        relevance = relevance_score(query, record.content)
        scored.append(
            RetrievedMemory(
                record=record,
                score=recency + importance + relevance,
                recency=recency,
                importance=importance,
                relevance=relevance,
            )
        )
    ranked = sorted(scored, key=lambda item: item.score, reverse=True)[:top_k]
    store.touch([item.record.memory_id for item in ranked], when=now)
    return ranked
