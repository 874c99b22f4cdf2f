"""
Document Generator Service
===========================
Turns a GradingResult into the evaluation form returned to the uploader.

Two steps, kept apart so each can be tested on its own:
- build_document_model(): GradingResult -> DocumentModel, an immutable list
  of blocks (title, lines, headings, paragraphs) made of text runs.
- render_docx(): DocumentModel -> .docx bytes via python-docx.

Rendering is deterministic: identical input gives byte-identical output.
"""
import io
import re
import zipfile
from datetime import datetime, timezone
from typing import Literal, Tuple

from docx import Document
from docx.oxml.ns import qn
from pydantic import BaseModel, ConfigDict

from sheetgrader.services.font_resolver import font_family_for


TITLE_TEXT = "Yazılı Değerlendirme Formu"
RESULTS_HEADING = "Kriter Sonuçları"
PLACEHOLDER = "-"
FLAG_SEPARATOR = ", "
FIELD_SEPARATOR = "  |  "

# Fixed so repeated renders produce identical bytes
FIXED_TIMESTAMP = datetime(2000, 1, 1, tzinfo=timezone.utc)
ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)

# Characters XML 1.0 cannot carry; python-docx refuses them
_XML_INVALID_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def xml_safe(text):
    return _XML_INVALID_RE.sub("", text)


class DocumentAssemblyError(Exception):
    """Raised when the document cannot be built or serialized."""


class TextRun(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    bold: bool = False


class Block(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["title", "line", "heading", "paragraph"]
    runs: Tuple[TextRun, ...]
    level: int = 0

    @property
    def text(self):
        return "".join(run.text for run in self.runs)


class DocumentModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    blocks: Tuple[Block, ...] = ()

    def text_lines(self):
        return [block.text for block in self.blocks]


class DocumentBuilder:
    """Appends immutable blocks; build() freezes them into a DocumentModel."""

    def __init__(self):
        self._blocks = []

    def _add(self, kind, runs, level=0):
        self._blocks.append(Block(kind=kind, runs=tuple(runs), level=level))
        return self

    def title(self, text):
        return self._add("title", [TextRun(text=xml_safe(text))])

    def heading(self, text, level=2):
        return self._add("heading", [TextRun(text=xml_safe(text))], level=max(1, min(3, level)))

    def line(self, *runs):
        """A paragraph made of several runs; plain strings become plain runs."""
        return self._add("line", [
            TextRun(text=xml_safe(r.text), bold=r.bold) if isinstance(r, TextRun) else TextRun(text=xml_safe(r))
            for r in runs
        ])

    def paragraph(self, text, bold=False):
        return self._add("paragraph", [TextRun(text=xml_safe(text), bold=bold)])

    def build(self):
        return DocumentModel(blocks=tuple(self._blocks))


def format_number(value):
    """Render numbers the way they were written: 10.0 -> '10', 0.5 -> '0.5'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_document_model(result, subject, exam_code):
    """Map a GradingResult onto the ordered blocks of the evaluation form.

    Args:
        result: GradingResult from the grading parser.
        subject: Course name shown in the header line.
        exam_code: Exam code; '-' when empty.

    Returns:
        DocumentModel with items in exactly the order they were received.
    """
    student = result.student
    builder = DocumentBuilder()

    builder.title(TITLE_TEXT)
    builder.line(f"Ders: {subject or ''}   |   Sınav Kodu: {exam_code or PLACEHOLDER}")
    builder.line(
        f"Öğrenci: {student.name or PLACEHOLDER}",
        FIELD_SEPARATOR,
        f"No: {student.id or PLACEHOLDER}",
        FIELD_SEPARATOR,
        f"Sınıf: {student.class_name or PLACEHOLDER}",
    )
    builder.heading(RESULTS_HEADING, level=2)

    for idx, item in enumerate(result.items, 1):
        builder.paragraph(f"{idx}) {item.criterion_id} - {item.name}", bold=True)
        builder.paragraph(
            f"Maks Puan: {format_number(item.max_points)} | "
            f"Ağırlık: {format_number(item.weight)} | "
            f"Puan: {format_number(item.raw_score)} | "
            f"Ağırlıklı: {format_number(item.weighted_score)}"
        )
        if item.justification:
            builder.paragraph(f"Gerekçe: {item.justification}")
        if item.flags:
            builder.paragraph(f"Notlar: {FLAG_SEPARATOR.join(item.flags)}")

    builder.heading(f"Final Notu (100): {int(result.final_score_100)}", level=3)
    if result.notes:
        builder.paragraph(f"Açıklama: {result.notes}")

    return builder.build()


def _apply_font(run, font_name):
    """Point every font slot of a run at ``font_name``."""
    run.font.name = font_name
    run._element.rPr.rFonts.set(qn('w:eastAsia'), font_name)
    run._element.rPr.rFonts.set(qn('w:cs'), font_name)


def _fix_core_properties(doc):
    props = doc.core_properties
    props.title = TITLE_TEXT
    props.author = "sheetgrader"
    props.last_modified_by = "sheetgrader"
    props.revision = 1
    props.created = FIXED_TIMESTAMP
    props.modified = FIXED_TIMESTAMP
    props.last_printed = FIXED_TIMESTAMP


def _normalize_zip(data):
    """Re-pack a .docx with fixed entry timestamps so output is reproducible."""
    source = zipfile.ZipFile(io.BytesIO(data))
    out = io.BytesIO()
    with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as target:
        for info in source.infolist():
            fixed = zipfile.ZipInfo(info.filename, date_time=ZIP_DATE_TIME)
            fixed.compress_type = zipfile.ZIP_DEFLATED
            fixed.external_attr = info.external_attr
            target.writestr(fixed, source.read(info.filename))
    source.close()
    return out.getvalue()


def render_docx(model, font_name=None):
    """Serialize a DocumentModel to .docx bytes.

    Args:
        model: DocumentModel from build_document_model().
        font_name: Optional font family applied to every run.

    Returns:
        bytes of a self-contained .docx file.

    Raises:
        DocumentAssemblyError: if python-docx fails to build or save.
    """
    try:
        doc = Document()
        if font_name:
            doc.styles['Normal'].font.name = font_name

        for block in model.blocks:
            if block.kind == "title":
                paragraph = doc.add_heading(block.text, level=0)
            elif block.kind == "heading":
                paragraph = doc.add_heading(block.text, level=block.level)
            else:
                paragraph = doc.add_paragraph()
                for text_run in block.runs:
                    run = paragraph.add_run(text_run.text)
                    if text_run.bold:
                        run.bold = True

            if font_name:
                for run in paragraph.runs:
                    _apply_font(run, font_name)

        _fix_core_properties(doc)
        buffer = io.BytesIO()
        doc.save(buffer)
        return _normalize_zip(buffer.getvalue())
    except DocumentAssemblyError:
        raise
    except Exception as e:
        raise DocumentAssemblyError(f"could not render document: {e}") from e


def assemble_docx(result, subject, exam_code, font_path=None):
    """GradingResult -> .docx bytes, using the font at ``font_path`` if given."""
    try:
        model = build_document_model(result, subject, exam_code)
    except Exception as e:
        raise DocumentAssemblyError(f"could not build document model: {e}") from e
    return render_docx(model, font_name=font_family_for(font_path))
