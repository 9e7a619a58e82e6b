"""Search engine: turns structured queries into FTS5 matches."""
import logging
import re
import time
from typing import List, Optional

from folder_search_server.config import settings
from folder_search_server.models.schemas import (AIResponse, AISource, Highlight, IndexedFile,
                                                 SearchQuery, SearchResult)
from folder_search_server.services.database import FILE_COLUMNS, Database

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r'\w+')

# Maximum token distance for fuzzy (NEAR) queries
NEAR_DISTANCE = 10


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text)


def build_match_expression(query: SearchQuery) -> Optional[str]:
    """Build the FTS5 MATCH expression for a query, or None if it has no terms.

    - semantic: every term must appear, ranked by bm25
    - fuzzy: one term becomes a prefix match, several a NEAR group
    - default: the text as an exact phrase
    """
    tokens = tokenize(query.text)
    if not tokens:
        return None

    if query.semantic:
        return " ".join(f'"{token}"' for token in tokens)

    if query.fuzzy:
        if len(tokens) == 1:
            return f'"{tokens[0]}"*'
        terms = " ".join(f'"{token}"' for token in tokens)
        return f"NEAR({terms}, {NEAR_DISTANCE})"

    phrase = query.text.strip().replace('"', '""')
    return f'"{phrase}"'


def extract_highlights(snippet: str, start_marker: str, end_marker: str) -> List[Highlight]:
    """Locate marked terms; offsets refer to the snippet with markers removed."""
    highlights = []
    pos = 0
    plain_length = 0
    while True:
        begin = snippet.find(start_marker, pos)
        if begin == -1:
            break
        finish = snippet.find(end_marker, begin + len(start_marker))
        if finish == -1:
            break

        plain_length += begin - pos
        term = snippet[begin + len(start_marker):finish]
        highlights.append(Highlight(start=plain_length, end=plain_length + len(term), text=term))
        plain_length += len(term)
        pos = finish + len(end_marker)
    return highlights


class SearchService:
    """Runs searches and suggestions against the store."""

    def __init__(
        self,
        db: Database,
        limit: int = settings.search_limit,
        highlight_start: str = settings.highlight_start,
        highlight_end: str = settings.highlight_end,
        snippet_tokens: int = settings.snippet_tokens,
        suggestion_limit: int = settings.suggestion_limit
    ):
        self.db = db
        self.limit = limit
        self.highlight_start = highlight_start
        self.highlight_end = highlight_end
        self.snippet_tokens = snippet_tokens
        self.suggestion_limit = suggestion_limit

    def search(self, query: SearchQuery) -> List[SearchResult]:
        """Ranked results, best (lowest bm25) first. Failures give an empty list."""
        match_expression = build_match_expression(query)
        if match_expression is None:
            return []

        try:
            rows = self.db.search(
                match_expression,
                filters=query.filters,
                limit=self.limit,
                highlight_start=self.highlight_start,
                highlight_end=self.highlight_end,
                snippet_tokens=self.snippet_tokens
            )
        except Exception as e:
            logger.error(f"Search error for {match_expression!r}: {e}")
            try:
                self.db.add_log("error", "Search failed", {"query": query.model_dump(), "error": str(e)})
            except Exception as log_error:
                logger.error(f"Could not write diagnostic log entry: {log_error}")
            return []

        results = []
        for row in rows:
            snippet = row["snippet"] or ""
            results.append(SearchResult(
                file=IndexedFile(**{column: row[column] for column in FILE_COLUMNS}),
                score=float(row["score"] or 0.0),
                snippet=snippet,
                highlights=extract_highlights(snippet, self.highlight_start, self.highlight_end)
            ))
        return results

    def get_suggestions(self, partial: str) -> List[str]:
        """Distinct file names containing partial (case-insensitive), newest first."""
        needle = partial.strip()
        if len(needle) < 2:
            return []
        return self.db.get_file_names_containing(needle, self.suggestion_limit)

    def add_to_search_history(self, text: str):
        self.db.add_log("info", "Search query", {"query": text})

    def search_with_ai(self, text: str, context: List[SearchResult]) -> AIResponse:
        """Placeholder answer listing the given results as sources."""
        started = time.perf_counter()
        sources = [
            AISource(file=result.file, relevance=result.score, snippet=result.snippet)
            for result in context
        ]
        return AIResponse(
            text=f'Search for: "{text}". {len(context)} results found.',
            sources=sources,
            processing_time=(time.perf_counter() - started) * 1000
        )
