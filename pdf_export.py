# pdf_export.py
"""
Export the daily-operations list to PDF using reportlab.
Landscape A4, black and white: title and date at the top, one table with a
black header row and one body row per record, operator footer line.
Chinese text uses reportlab's built-in STSong-Light CID font.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from config import EMPTY_MARKER
from domain.models import InstrumentRecord, display_label
from file_utils import with_suffix

logger = logging.getLogger(__name__)

# Black and white only
BLACK = colors.HexColor("#000000")
WHITE = colors.HexColor("#ffffff")

CJK_FONT = "STSong-Light"

# (header, record attribute, relative column width)
REPORT_COLUMNS = [
    ("管理编号", "management_number", 1.1),
    ("名称", "name", 1.4),
    ("型号", "model", 1.0),
    ("出厂编号", "factory_number", 1.0),
    ("出入库状态", "in_out_status", 0.8),
    ("仪器状态", "instrument_status", 0.8),
    ("出库时间", "outbound_time", 1.3),
    ("入库时间", "inbound_time", 1.3),
    ("操作人", "operator", 0.8),
    ("显示至", "display_until", 0.9),
]


def _register_fonts() -> str:
    if CJK_FONT not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(UnicodeCIDFont(CJK_FONT))
    return CJK_FONT


def _cell_text(record: InstrumentRecord, attr: str) -> str:
    value = getattr(record, attr)
    if value in (None, ""):
        return EMPTY_MARKER
    return escape(display_label(value))


def export_daily_operations_pdf(records: Iterable[InstrumentRecord], output_path: str | Path,
                                day: date | None = None, operator: str | None = None) -> Path:
    """
    Write the given records (normally visibility_policy.daily_operations_view) as
    a one-table PDF. Returns the path written (".pdf" is added when missing).
    """
    output_path = with_suffix(output_path, ".pdf")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    day = day or date.today()
    records = list(records)
    font = _register_fonts()

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=landscape(A4),
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.4 * inch,
        bottomMargin=0.4 * inch,
        title=f"Daily operations {day.isoformat()}",
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        name="PDFTitle",
        parent=styles["Normal"],
        fontName=font,
        fontSize=14,
        leading=14 * 1.5,
        alignment=1,
        textColor=BLACK,
    )
    small_style = ParagraphStyle(
        name="Small",
        parent=styles["Normal"],
        fontName=font,
        fontSize=8,
        leading=8 * 1.5,
        textColor=BLACK,
    )
    table_header_style = ParagraphStyle(
        name="TableHeader",
        parent=small_style,
        fontSize=8,
        leading=10,
        textColor=WHITE,
        alignment=1,
    )
    table_cell_style = ParagraphStyle(
        name="TableCell",
        parent=small_style,
        fontSize=7,
        leading=9,
        alignment=1,
    )

    story = [
        Paragraph(f"当日出入库记录 {day.isoformat()}", title_style),
        Spacer(1, 0.1 * inch),
        Paragraph(f"共 {len(records)} 条", small_style),
        Spacer(1, 0.08 * inch),
    ]

    header_cells = [Paragraph(escape(label), table_header_style) for label, _attr, _w in REPORT_COLUMNS]
    rows = [header_cells]
    for record in records:
        rows.append([Paragraph(_cell_text(record, attr), table_cell_style) for _l, attr, _w in REPORT_COLUMNS])

    total_weight = sum(w for _l, _a, w in REPORT_COLUMNS)
    usable = landscape(A4)[0] - inch
    col_widths = [usable * w / total_weight for _l, _a, w in REPORT_COLUMNS]
    pad = 0.04 * inch
    tbl = Table(rows, colWidths=col_widths, repeatRows=1)
    tbl.setStyle(
        TableStyle(
            [
                # Header: black with white text, white grid lines between columns.
                ("BACKGROUND", (0, 0), (-1, 0), BLACK),
                ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
                ("GRID", (0, 0), (-1, 0), 0.5, WHITE),
                ("TEXTCOLOR", (0, 1), (-1, -1), BLACK),
                ("GRID", (0, 1), (-1, -1), 0.5, BLACK),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("ALIGN", (0, 0), (-1, -1), "CENTER"),
                ("LEFTPADDING", (0, 0), (-1, -1), pad),
                ("RIGHTPADDING", (0, 0), (-1, -1), pad),
                ("TOPPADDING", (0, 0), (-1, -1), pad),
                ("BOTTOMPADDING", (0, 0), (-1, -1), pad),
            ]
        )
    )
    story.append(tbl)
    story.append(Spacer(1, 0.15 * inch))

    generated = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    footer = f"生成时间: {generated}"
    if operator:
        footer += f"    操作人: {escape(operator)}"
    story.append(Paragraph(footer, small_style))

    doc.build(story)
    logger.info("Exported %s daily operation record(s) to %s", len(records), output_path)
    return output_path
