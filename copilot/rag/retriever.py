# copilot/rag/retriever.py
"""
Lexical retriever used by the chat endpoint.

Documents are short rendered strings (one per class session). Ranking mixes
query-term overlap with term-frequency cosine; there is no index, the corpus
is rebuilt and scored on every request.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Sequence

from copilot.rag.scoring import combined_score
from copilot.rag.tokenizer import term_frequency, tokenize

TOP_K = 6


class CorpusError(ValueError):
    """A record could not be turned into a Document."""


@dataclass(frozen=True)
class Document:
    id: str
    text: str


@dataclass(frozen=True)
class ScoredDocument:
    document: Document
    score: float


def session_to_document(session: Dict) -> Document:
    """Turn a class session into a short document string for retrieval."""
    s = session
    parts = [
        str(s.get("date", "")),
        str(s.get("instructorName", "")),
        str(s.get("classType", "")),
        str(s.get("timeSlot", "")),
        f"price {s.get('actualPrice')} capacity {s.get('capacity')} "
        f"booked {s.get('booked')} attended {s.get('attended')}",
        f"revenue {s.get('revenue')} cancellations {s.get('cancellations')} "
        f"lead time {s.get('bookingLeadTimeDays')} days",
    ]
    return Document(id=str(s.get("id") or ""), text=" ".join(parts))


def build_corpus(
    records: Iterable[Dict],
    to_document: Callable[[Dict], Document] = session_to_document,
) -> List[Document]:
    """Map caller records to Documents, keeping record order."""
    corpus: List[Document] = []
    for i, rec in enumerate(records or []):
        doc = to_document(rec)
        if not doc.id:
            raise CorpusError(f"record #{i} has no id")
        corpus.append(doc)
    return corpus


def _score_tokens(q_tokens: List[str], corpus: Sequence[Document]) -> List[ScoredDocument]:
    q_tf = term_frequency(q_tokens)
    out: List[ScoredDocument] = []
    for doc in corpus:
        d_tokens = tokenize(doc.text)
        score = combined_score(q_tokens, q_tf, d_tokens, term_frequency(d_tokens))
        out.append(ScoredDocument(document=doc, score=score))
    return out


def score_corpus(query: str, corpus: Sequence[Document]) -> List[ScoredDocument]:
    """Score every document against the query, in corpus order."""
    return _score_tokens(tokenize(query), corpus)


def retrieve(query: str, corpus: Sequence[Document], k: int = TOP_K) -> List[Document]:
    """
    Return at most ``k`` documents ranked by combined score.

    A query with no usable tokens returns the first ``k`` documents in corpus
    order. Equal scores keep their corpus order.
    """
    if k < 0:
        raise ValueError(f"k must be >= 0, got {k}")
    q_tokens = tokenize(query)
    if not q_tokens:
        return list(corpus[:k])

    scored = _score_tokens(q_tokens, corpus)
    order = sorted(range(len(scored)), key=lambda i: (-scored[i].score, i))
    return [scored[i].document for i in order[:k]]
