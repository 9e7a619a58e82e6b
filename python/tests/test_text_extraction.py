"""Tests for text extraction."""
import pytest

from folder_search_server.services.office_conversion import OfficeConverter
from folder_search_server.services.text_extraction import (TextExtractionService, extract_html, extract_ini,
                                                           extract_json, extract_plain_text, extract_rtf,
                                                           extract_xml)


class FakeConverter(OfficeConverter):
    def __init__(self, result=None, error=None):
        super().__init__()
        self.result = result
        self.error = error

    def convert(self, file_path):
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def service():
    return TextExtractionService(office_converter=FakeConverter(result="  slide text  "))


def test_plain_text_normalizes_line_endings():
    assert extract_plain_text("  one\r\ntwo\rthree\tfour  ") == "one\ntwo\nthree  four"


def test_html_drops_scripts_styles_and_tags():
    html = """<html><head><style>body { color: red }</style><script>alert('x')</script></head>
    <body><!-- hidden --><p>Fish &amp; chips&nbsp;&lt;today&gt;</p></body></html>"""
    assert extract_html(html) == "Fish & chips <today>"


def test_entities_decode_once():
    assert extract_html("<p>&amp;lt;</p>") == "&lt;"


def test_xml_keeps_element_text():
    xml = '<?xml version="1.0"?><!-- c --><root><item id="1">First</item><item>Second &quot;B&quot;</item></root>'
    assert extract_xml(xml) == 'First Second "B"'


def test_json_flattens_values():
    assert extract_json('{"title": "Plan", "tags": ["a", "b"], "n": 3, "ok": true, "none": null}') == \
        "Plan a b 3 true"


def test_invalid_json_falls_back_to_raw_text():
    assert extract_json("{not json") == "{not json"


def test_deeply_nested_json_falls_back_to_raw_text():
    nested = "[" * 100000 + "]" * 100000
    assert extract_json(nested) == nested


def test_rtf_strips_control_words():
    rtf = r"{\rtf1\ansi{\fonttbl\f0\fswiss Helvetica;}\f0\pard Hello \b bold\b0 world\par}"
    assert extract_rtf(rtf) == "Hello bold world"


def test_ini_keeps_values():
    ini = "; comment\n[section]\nname = Alice\n# other\nempty =\ncity=Paris\n"
    assert extract_ini(ini) == "Alice Paris"


def test_service_dispatches_by_extension(service, tmp_path):
    page = tmp_path / "page.HTML"
    page.write_text("<b>Bold</b> move")
    code = tmp_path / "main.py"
    code.write_text("print('hi')\n")

    assert service.extract_text(str(page)) == "Bold move"
    assert service.extract_text(str(code)) == "print('hi')"


def test_office_documents_use_the_converter(service, tmp_path):
    deck = tmp_path / "deck.pptx"
    deck.write_bytes(b"PK")
    assert service.extract_text(str(deck)) == "slide text"


def test_failures_give_empty_text(tmp_path):
    service = TextExtractionService(office_converter=FakeConverter(error=ValueError("corrupt")))
    doc = tmp_path / "broken.docx"
    doc.write_bytes(b"garbage")

    assert service.extract_text(str(doc)) == ""
    assert service.extract_text(str(tmp_path / "missing.txt")) == ""


def test_unsupported_extension_gives_empty_text(service, tmp_path):
    sheet = tmp_path / "data.xlsx"
    sheet.write_bytes(b"PK")
    assert service.extract_text(str(sheet)) == ""
    assert not service.is_supported(str(sheet))


def test_registered_extractor_takes_precedence(service, tmp_path):
    doc = tmp_path / "notes.pdf"
    doc.write_text("raw")
    service.add_extractor(".PDF", lambda content, path: content.upper())

    assert service.extract_text(str(doc)) == "RAW"
    assert ".pdf" in service.get_supported_extensions()


def test_extract_text_uses_given_bytes(tmp_path):
    service = TextExtractionService(office_converter=FakeConverter())
    missing = tmp_path / "never-written.txt"

    assert service.extract_text(str(missing), data=b"already read") == "already read"
    assert service.extract_text(str(missing)) == ""
