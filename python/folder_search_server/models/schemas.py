"""Pydantic models for API requests/responses."""
import re
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from folder_search_server.config import DEFAULT_EXCLUDE_PATTERNS, settings

_SIZE_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([KMGT]?B?)\s*$', re.IGNORECASE)
_SIZE_UNITS = {'': 1, 'B': 1, 'K': 1024, 'KB': 1024, 'M': 1024 ** 2, 'MB': 1024 ** 2,
               'G': 1024 ** 3, 'GB': 1024 ** 3, 'T': 1024 ** 4, 'TB': 1024 ** 4}


def parse_size(value: Union[str, int, None]) -> Optional[int]:
    """Parse sizes such as "100MB" or "1.5 GB" into bytes. Empty or 0 means no limit."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value or None
    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    size = int(float(number) * _SIZE_UNITS[unit.upper()])
    return size or None


class IndexedFile(BaseModel):
    """One row of the files table."""
    id: Optional[int] = None
    path: str
    name: str
    extension: str = ""
    size: int = 0
    modified_date: int = 0
    content_hash: str = ""
    content: Optional[str] = None
    ocr_content: Optional[str] = None
    # Reserved for semantic search; never computed
    embedding: Optional[bytes] = Field(default=None, exclude=True)
    index_date: int = 0


class IndexingProgress(BaseModel):
    """Progress of a running folder scan."""
    current: int
    total: int
    current_file: str
    percentage: int


class DateRange(BaseModel):
    """Inclusive range of modification dates in epoch seconds."""
    start: int
    end: int


class SizeRange(BaseModel):
    """Inclusive range of file sizes in bytes."""
    min: int = 0
    max: int


class SearchFilters(BaseModel):
    """Optional restrictions applied to a search."""
    file_types: Optional[List[str]] = Field(default=None, description="Extensions including the dot, e.g. '.md'")
    date_range: Optional[DateRange] = None
    size_range: Optional[SizeRange] = None
    folders: Optional[List[str]] = Field(default=None, description="Only files under these folders")


class SearchQuery(BaseModel):
    """Request for a full-text search."""
    text: str = Field(..., min_length=1, description="Search text")
    semantic: bool = Field(default=False, description="Accepted for compatibility; ranks by plain term match")
    fuzzy: bool = Field(default=False, description="Proximity/prefix match instead of exact phrase")
    filters: Optional[SearchFilters] = None


class Highlight(BaseModel):
    """Location of a highlighted term inside the marker-free snippet."""
    start: int
    end: int
    text: str


class SearchResult(BaseModel):
    """Single search result.

    ``score`` is the raw bm25 value: lower is more relevant.
    """
    file: IndexedFile
    score: float
    snippet: str
    highlights: List[Highlight] = []


class SearchResponse(BaseModel):
    """Response from a search."""
    results: List[SearchResult]
    query: str
    count: int


class SuggestionsResponse(BaseModel):
    """File name suggestions for a partial query."""
    partial: str
    suggestions: List[str]


class AIRequest(BaseModel):
    """Request for an AI answer over search results."""
    query: str = Field(..., min_length=1)
    context: List[SearchResult] = []


class AISource(BaseModel):
    """A file used as a source for an AI answer."""
    file: IndexedFile
    relevance: float
    snippet: str


class AIResponse(BaseModel):
    """Answer produced from search results."""
    text: str
    sources: List[AISource]
    processing_time: float


class IndexFolderRequest(BaseModel):
    """Request to index a folder."""
    folder_path: str = Field(..., min_length=1)


class IndexFolderResponse(BaseModel):
    """Response from indexing a folder."""
    folder_path: str
    status: str
    total: int
    indexed: int


class FilePathRequest(BaseModel):
    """Request naming a single file."""
    path: str = Field(..., min_length=1)


class IndexingConfig(BaseModel):
    """Indexing section of the application config."""
    exclude_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_file_size: str = settings.default_max_file_size
    ocr_languages: List[str] = Field(default_factory=lambda: list(settings.default_ocr_languages))

    @field_validator("max_file_size")
    @classmethod
    def check_max_file_size(cls, value: str) -> str:
        parse_size(value)
        return value


class AIConfig(BaseModel):
    """AI section of the application config."""
    provider: Literal["local", "openai", "anthropic", "ollama"] = "local"
    model: str = "llama3-8b"
    api_key: Optional[str] = None
    max_tokens: int = 4000


class UIConfig(BaseModel):
    """UI section of the application config."""
    theme: Literal["dark", "light", "auto"] = "auto"
    always_on_top: bool = False
    show_thumbnails: bool = True


class AppConfig(BaseModel):
    """Complete application config."""
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    ui: UIConfig = Field(default_factory=UIConfig)


class IndexingEvent(BaseModel):
    """Lifecycle or progress message published by the indexing engine."""
    seq: int
    name: str
    payload: Dict[str, Any] = {}
    timestamp: float
