"""Turn news articles into indexable chunks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Sequence

from newsrag.index.vector_index import VectorIndex
from newsrag.models import DocumentChunk
from newsrag.utils.text import chunk_text, clean_text

LOGGER = logging.getLogger(__name__)

MIN_CONTENT_CHARS = 50


@dataclass(slots=True)
class Article:
    title: str
    content: str
    source: str
    published_at: str
    link: str = "#"


@dataclass(slots=True)
class IngestStats:
    articles: int = 0
    chunks: int = 0
    sources: List[str] = field(default_factory=list)


SAMPLE_ARTICLES: tuple[Dict[str, str], ...] = (
    {
        "title": "Artificial Intelligence Transforms Healthcare Industry",
        "content": "Major hospitals across the country are implementing AI-powered diagnostic tools that can detect diseases earlier than traditional methods. The technology uses machine learning algorithms trained on millions of medical images to identify patterns that human doctors might miss. Early trials show a 30% improvement in early cancer detection rates.",
        "source": "Tech Health Daily",
        "date": "2024-12-01",
    },
    {
        "title": "Global Climate Summit Reaches Historic Agreement",
        "content": "World leaders at the annual climate summit have agreed to ambitious new targets for reducing carbon emissions. The agreement commits participating nations to achieving net-zero emissions by 2050 and provides funding mechanisms for developing countries to transition to renewable energy.",
        "source": "Environmental News Network",
        "date": "2024-12-02",
    },
    {
        "title": "Tech Giants Report Strong Quarterly Earnings",
        "content": "Major technology companies have reported better-than-expected earnings for the third quarter, driven by strong demand for cloud computing services and digital advertising. Revenue growth exceeded analyst expectations by an average of 15%.",
        "source": "Financial Times",
        "date": "2024-12-03",
    },
    {
        "title": "New Space Mission Discovers Water on Mars",
        "content": "Scientists have confirmed the discovery of subsurface water ice on Mars, raising hopes for future human colonization. The discovery was made using advanced radar technology aboard the latest Mars orbiter.",
        "source": "Space Exploration Weekly",
        "date": "2024-12-04",
    },
    {
        "title": "Electric Vehicle Sales Surge Worldwide",
        "content": "Global electric vehicle sales have reached a new milestone, with EVs now accounting for 20% of all new car sales. Government incentives and improved battery technology have made electric cars more accessible to consumers.",
        "source": "Auto Industry News",
        "date": "2024-12-05",
    },
    {
        "title": "Heavy Storms Expected Across the Region This Weekend",
        "content": "Meteorologists forecast heavy rain and strong winds for the coming weekend, with flood warnings issued for several low-lying districts. Today's forecast calls for cloudy skies turning to showers by evening, and temperatures will drop sharply after the weather front passes.",
        "source": "Weather Desk",
        "date": "2024-12-06",
    },
)


def _article_from_dict(raw: Dict[str, Any]) -> Article:
    return Article(
        title=str(raw.get("title") or "Untitled"),
        content=clean_text(str(raw.get("content") or raw.get("description") or "")),
        source=str(raw.get("source") or "Unknown"),
        published_at=str(raw.get("pub_date") or raw.get("published_at") or raw.get("date") or ""),
        link=str(raw.get("link") or "#"),
    )


def sample_articles() -> List[Article]:
    """Built-in corpus used when no article file is supplied."""
    return [_article_from_dict(raw) for raw in SAMPLE_ARTICLES]


def load_articles(path: Path) -> List[Article]:
    """Read articles from a JSON file holding a list of article objects.

    Articles with less than ``MIN_CONTENT_CHARS`` characters of content are skipped.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("articles", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of articles")

    articles = []
    for raw in data:
        if not isinstance(raw, dict):
            continue
        article = _article_from_dict(raw)
        if len(article.content) < MIN_CONTENT_CHARS:
            LOGGER.debug("Skipping short article %r", article.title)
            continue
        articles.append(article)
    return articles


def build_chunks(
    articles: Iterable[Article], *, max_chars: int = 500, overlap: int = 100
) -> Iterator[DocumentChunk]:
    """Produce chunk records for each article, tagged with provenance metadata."""
    for article in articles:
        pieces = chunk_text(f"{article.title}\n\n{article.content}", max_chars=max_chars, overlap=overlap)
        for idx, piece in enumerate(pieces):
            yield DocumentChunk(
                text=piece,
                metadata={
                    "title": article.title,
                    "source": article.source,
                    "published_at": article.published_at,
                    "link": article.link,
                    "chunk_index": idx,
                    "total_chunks": len(pieces),
                },
            )


def ingest(
    index: VectorIndex,
    articles: Sequence[Article],
    *,
    batch_size: int = 10,
    replace: bool = True,
    max_chars: int = 500,
    overlap: int = 100,
) -> IngestStats:
    """Chunk ``articles`` and add them to ``index`` in batches.

    With ``replace`` the index is cleared first.
    """
    chunks = list(build_chunks(articles, max_chars=max_chars, overlap=overlap))
    stats = IngestStats(
        articles=len(articles),
        sources=sorted({article.source for article in articles}),
    )
    if replace:
        index.clear()

    step = max(batch_size, 1)
    for i in range(0, len(chunks), step):
        batch = chunks[i : i + step]
        stats.chunks += index.add_documents(batch)
        LOGGER.info(f"Processed {min(i + step, len(chunks))}/{len(chunks)} chunks")

    return stats
