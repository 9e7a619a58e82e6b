"""Plain-text extraction dispatched by file extension."""
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from folder_search_server.services.office_conversion import OfficeConverter, get_office_converter

logger = logging.getLogger(__name__)

# An extractor receives the decoded file content and the file path
Extractor = Callable[[str, str], str]

PLAIN_TEXT_EXTENSIONS = [
    '.txt', '.md', '.log',
    '.js', '.ts', '.jsx', '.tsx', '.py', '.java', '.cpp', '.c', '.h',
    '.css', '.scss', '.yaml', '.yml',
    '.php', '.rb', '.go', '.rs', '.swift', '.kt', '.dart',
    '.conf', '.config', '.env',
]

_SCRIPT_RE = re.compile(r'<script\b[^>]*>.*?</script\s*>', re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r'<style\b[^>]*>.*?</style\s*>', re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r'<[^>]*>')
_XML_DECL_RE = re.compile(r'<\?xml[^>]*\?>')
_COMMENT_RE = re.compile(r'<!--.*?-->', re.DOTALL)
_WHITESPACE_RE = re.compile(r'\s+')
_RTF_GROUP_RE = re.compile(r'\{\\[^}]*\}')
_RTF_CONTROL_WORD_RE = re.compile(r'\\[a-zA-Z]+-?\d*')
_RTF_CONTROL_SYMBOL_RE = re.compile(r'\\[^a-zA-Z]')
_RTF_BRACES_RE = re.compile(r'[{}]')

# &amp; last so "&amp;lt;" decodes to "&lt;" rather than "<"
_ENTITIES = [
    ('&nbsp;', ' '),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&amp;', '&'),
]


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(' ', text).strip()


def _decode_entities(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def extract_plain_text(content: str, file_path: str = "") -> str:
    """Normalize line endings and tabs, keeping the text structure."""
    return (content
            .replace('\r\n', '\n')
            .replace('\r', '\n')
            .replace('\t', '  ')
            .strip())


def extract_html(content: str, file_path: str = "") -> str:
    """Drop scripts, styles and tags; decode common entities."""
    text = _SCRIPT_RE.sub('', content)
    text = _STYLE_RE.sub('', text)
    text = _COMMENT_RE.sub('', text)
    text = _TAG_RE.sub(' ', text)
    return _collapse_whitespace(_decode_entities(text))


def extract_xml(content: str, file_path: str = "") -> str:
    """Drop the declaration, comments and tags; keep element text."""
    text = _XML_DECL_RE.sub('', content)
    text = _COMMENT_RE.sub('', text)
    text = _TAG_RE.sub(' ', text)
    return _collapse_whitespace(_decode_entities(text))


def flatten_json_values(value: Any) -> List[str]:
    """Collect string, number and boolean leaves in traversal order."""
    texts: List[str] = []

    def walk(item: Any):
        if isinstance(item, bool):
            texts.append('true' if item else 'false')
        elif isinstance(item, str):
            texts.append(item)
        elif isinstance(item, (int, float)):
            texts.append(str(item))
        elif isinstance(item, list):
            for element in item:
                walk(element)
        elif isinstance(item, dict):
            for element in item.values():
                walk(element)

    walk(value)
    return texts


def extract_json(content: str, file_path: str = "") -> str:
    """Flatten JSON values; fall back to the raw text when parsing fails."""
    try:
        return ' '.join(flatten_json_values(json.loads(content))).strip()
    except (ValueError, RecursionError):
        return content


def extract_rtf(content: str, file_path: str = "") -> str:
    """Strip RTF control groups, words and symbols."""
    text = _RTF_GROUP_RE.sub('', content)
    text = _RTF_CONTROL_WORD_RE.sub('', text)
    text = _RTF_CONTROL_SYMBOL_RE.sub('', text)
    text = _RTF_BRACES_RE.sub('', text)
    return _collapse_whitespace(text)


def extract_ini(content: str, file_path: str = "") -> str:
    """Keep only the values of key=value lines."""
    values = []
    for line in content.split('\n'):
        stripped = line.strip()
        if not stripped or stripped.startswith(('#', ';', '[')):
            continue
        key, sep, value = stripped.partition('=')
        if sep and value.strip():
            values.append(value.strip())
    return ' '.join(values)


class TextExtractionService:
    """Turns supported files into plain text."""

    def __init__(self, office_converter: Optional[OfficeConverter] = None):
        self.office_converter = office_converter or get_office_converter()
        self._extractors: Dict[str, Extractor] = {ext: extract_plain_text for ext in PLAIN_TEXT_EXTENSIONS}
        self._extractors.update({
            '.rtf': extract_rtf,
            '.html': extract_html,
            '.htm': extract_html,
            '.xml': extract_xml,
            '.json': extract_json,
            '.ini': extract_ini,
        })

    def extract_text(self, file_path: str, data: Optional[bytes] = None) -> str:
        """Extract plain text from a file.

        When ``data`` is given, text formats decode it instead of reading
        the file again; office formats always read from ``file_path``.
        Unsupported extensions and every extraction failure give an
        empty string; nothing is raised.
        """
        extension = Path(file_path).suffix.lower()
        try:
            extractor = self._extractors.get(extension)
            if extractor is None:
                if self.office_converter.is_supported(file_path):
                    return self.office_converter.convert(file_path).strip()
                return ""

            if data is None:
                data = Path(file_path).read_bytes()
            content = data.decode('utf-8', errors='replace')
            return extractor(content, file_path)
        except Exception as e:
            logger.error(f"Text extraction error for {file_path}: {e}", exc_info=True)
            return ""

    def is_supported(self, file_path: str) -> bool:
        """Check if a file has an extractor."""
        extension = Path(file_path).suffix.lower()
        return extension in self._extractors or self.office_converter.is_supported(file_path)

    def get_supported_extensions(self) -> List[str]:
        """List every extension with an extractor."""
        return sorted(set(self._extractors) | self.office_converter.supported_extensions)

    def add_extractor(self, extension: str, extractor: Extractor):
        """Register (or replace) the extractor for an extension."""
        self._extractors[extension.lower()] = extractor
