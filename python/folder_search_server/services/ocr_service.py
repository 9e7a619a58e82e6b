"""OCR for raster images using Tesseract."""
import logging
import re
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pytesseract
from PIL import Image

from folder_search_server.config import settings

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r'\s+')

# Language codes Tesseract ships traineddata for
TESSERACT_LANGUAGES = [
    'afr', 'amh', 'ara', 'asm', 'aze', 'aze_cyrl', 'bel', 'ben', 'bod',
    'bos', 'bre', 'bul', 'cat', 'ceb', 'ces', 'chi_sim', 'chi_tra',
    'chr', 'cos', 'cym', 'dan', 'deu', 'div', 'dzo', 'ell', 'eng',
    'enm', 'epo', 'est', 'eus', 'fao', 'fas', 'fil', 'fin', 'fra',
    'frk', 'frm', 'fry', 'gla', 'gle', 'glg', 'grc', 'guj', 'hat',
    'heb', 'hin', 'hrv', 'hun', 'hye', 'iku', 'ind', 'isl', 'ita',
    'ita_old', 'jav', 'jpn', 'kan', 'kat', 'kat_old', 'kaz', 'khm',
    'kir', 'kmr', 'kor', 'lao', 'lat', 'lav', 'lit', 'ltz', 'mal',
    'mar', 'mkd', 'mlt', 'mon', 'mri', 'msa', 'mya', 'nep', 'nld',
    'nor', 'oci', 'ori', 'pan', 'pol', 'por', 'pus', 'que', 'ron',
    'rus', 'san', 'sin', 'slk', 'slv', 'snd', 'spa', 'spa_old',
    'sqi', 'srp', 'srp_latn', 'sun', 'swa', 'swe', 'syr', 'tam',
    'tat', 'tel', 'tgk', 'tha', 'tir', 'ton', 'tur', 'uig', 'ukr',
    'urd', 'uzb', 'uzb_cyrl', 'vie', 'yid', 'yor',
]


def clean_text(text: str) -> str:
    """Collapse newlines and whitespace runs into single spaces."""
    return _WHITESPACE_RE.sub(' ', text).strip()


class TesseractRecognizer:
    """A Tesseract binding configured for an ordered set of languages."""

    def __init__(self, languages: Sequence[str]):
        # Fails fast with TesseractNotFoundError when the binary is missing
        self.version = pytesseract.get_tesseract_version()
        self.languages = list(languages)
        self.lang = "+".join(self.languages)
        logger.info(f"Tesseract {self.version} ready (lang={self.lang})")

    def recognize(self, image_path: str) -> str:
        with Image.open(image_path) as image:
            return pytesseract.image_to_string(image, lang=self.lang)

    def close(self):
        logger.debug(f"Tesseract recognizer for {self.lang} released")


class OCRService:
    """Lazily-created, process-wide OCR recognizer.

    Recognition is serialized: concurrent callers queue on the lock
    rather than starting more Tesseract workers.
    """

    def __init__(self, languages: Optional[Sequence[str]] = None):
        self._languages: List[str] = list(languages or ['eng', 'fra'])
        self._recognizer: Optional[TesseractRecognizer] = None
        self._lock = threading.Lock()

    def _initialize(self) -> TesseractRecognizer:
        if self._recognizer is None:
            self._recognizer = TesseractRecognizer(self._languages)
        return self._recognizer

    @property
    def initialized(self) -> bool:
        return self._recognizer is not None

    def extract_text(self, image_path: Union[str, Path]) -> str:
        """Recognize the text in an image. Any failure gives an empty string."""
        try:
            with self._lock:
                recognizer = self._initialize()
                if not Path(image_path).is_file():
                    raise FileNotFoundError(f"Image not found: {image_path}")
                text = recognizer.recognize(str(image_path))
            return clean_text(text)
        except Exception as e:
            logger.error(f"OCR error for {image_path}: {e}")
            return ""

    def terminate(self):
        """Release the recognizer; the next call creates a new one."""
        with self._lock:
            if self._recognizer is not None:
                self._recognizer.close()
                self._recognizer = None

    def set_languages(self, languages: Sequence[str]):
        """Switch recognition languages, recreating a live recognizer."""
        languages = list(languages)
        with self._lock:
            if languages == self._languages:
                return
            self._languages = languages
            if self._recognizer is None:
                return
            self._recognizer.close()
            self._recognizer = None
            try:
                self._initialize()
            except Exception as e:
                logger.error(f"Could not restart OCR with languages {languages}: {e}")

    def get_languages(self) -> List[str]:
        return list(self._languages)

    def get_supported_languages(self) -> List[str]:
        """Languages installed for Tesseract, or the full Tesseract list if unknown."""
        try:
            installed = pytesseract.get_languages(config='')
        except Exception as e:
            logger.warning(f"Could not list Tesseract languages: {e}")
            return list(TESSERACT_LANGUAGES)
        return sorted(lang for lang in installed if lang != 'osd')


# Global instance
_ocr_service: Optional[OCRService] = None


def get_ocr_service() -> OCRService:
    """Get or create the global OCR service instance."""
    global _ocr_service
    if _ocr_service is None:
        _ocr_service = OCRService(settings.default_ocr_languages)
    return _ocr_service
