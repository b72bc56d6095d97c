"""
Рендер SKL в PDF (ReportLab platypus).

Документ формируется в режиме invariant, поэтому одинаковые данные дают
побайтно одинаковый PDF. Необязательные изображения (логотипы, шапка,
подпись, печать) при отсутствии или ошибке чтения заменяются текстом.
"""

import html
import io
import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import HexColor, black
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.platypus import (
    HRFlowable, Image, KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)

from .exceptions import RenderError
from .generator import format_indonesian_date
from .models import CertificateData, SubjectGroup

logger = logging.getLogger(__name__)

# Формат F4 и поля 2 см
F4 = (210 * mm, 330 * mm)
MARGIN = 20 * mm
FRAME_WIDTH = F4[0] - 2 * MARGIN

GREY = HexColor("#888888")

REQUIRED_FIELDS = ("full_name", "cert_number", "issue_date")

GROUP_LABELS: Dict[SubjectGroup, str] = {
    SubjectGroup.A: "Pelajaran Umum",
    SubjectGroup.B: "Keterampilan",
    SubjectGroup.C: "Peminatan",
    SubjectGroup.D: "Lintas Minat",
}

DEFAULT_REGULATION_TEXT = (
    "Berdasarkan Peraturan Menteri Pendidikan, Kebudayaan, Riset, dan Teknologi Nomor 21 Tahun 2022 "
    "tentang Standar Penilaian Pendidikan pada Pendidikan Anak Usia Dini, Jenjang Pendidikan Dasar, "
    "dan Jenjang Pendidikan Menengah."
)
CRITERIA_INTRO = "Kriteria Lulus dari Satuan Pendidikan sesuai dengan peraturan perundang-undangan."
DEFAULT_BEFORE_STUDENT_TEXT = (
    "Yang bertanda tangan di bawah ini, Kepala Sekolah Menengah Atas, menerangkan bahwa:"
)
DEFAULT_AFTER_STUDENT_TEXT = (
    "telah dinyatakan LULUS dari Satuan Pendidikan berdasarkan hasil rapat pleno kelulusan."
)
CLOSING_TEXT = (
    "Demikian Surat Keterangan Kelulusan ini diberikan agar dapat dipergunakan sebagaimana mestinya."
)

_TAG_RE = re.compile(r"<[^>]+>")
_LI_RE = re.compile(r"<li[^>]*>(.*?)</li>", re.IGNORECASE | re.DOTALL)
_BREAK_RE = re.compile(r"<br\s*/?>|</p>|</div>", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")


def plain_text(fragment: str) -> str:
    """Убирает HTML разметку редактора и схлопывает пробелы."""
    text = html.unescape(_TAG_RE.sub(" ", fragment or ""))
    return _SPACE_RE.sub(" ", text).strip()


def parse_criteria(text: str) -> List[str]:
    """
    Разбирает текст критериев из редактора в список пунктов.

    Элементы <ol> нумеруются, элементы <ul> получают маркер,
    обычный текст делится по строкам и абзацам.
    """
    if not text or not text.strip():
        return []

    items = [plain_text(item) for item in _LI_RE.findall(text)]
    items = [item for item in items if item]
    if items:
        if re.search(r"<ol\b", text, re.IGNORECASE):
            return [f"{number}. {item}" for number, item in enumerate(items, 1)]
        return [f"• {item}" for item in items]

    lines = (plain_text(line) for line in _BREAK_RE.sub("\n", text).split("\n"))
    return [line for line in lines if line]


def default_criteria(data: CertificateData) -> List[str]:
    """Критерии по умолчанию, если в настройках ничего не задано."""
    province = data.province_name or "-"
    year = data.academic_year or "-"
    return [
        f"1. Surat Kepala Dinas Pendidikan Provinsi {province} tentang Kelulusan "
        f"SMA/SMK/SLB Tahun Ajaran {year}",
        "2. Ketuntasan dari seluruh program pembelajaran sesuai kurikulum yang berlaku, "
        "termasuk Ekstrakurikuler dan Prestasi lainnya.",
    ]


def make_styles() -> Dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()

    body = ParagraphStyle("Body", parent=base["Normal"], fontName="Helvetica",
                          fontSize=11, leading=15, alignment=TA_JUSTIFY, spaceAfter=4)
    return dict(
        body=body,
        left=ParagraphStyle("Left", parent=body, alignment=TA_LEFT),
        item=ParagraphStyle("Item", parent=body, alignment=TA_LEFT, leftIndent=15, spaceAfter=6),
        kop=ParagraphStyle("Kop", parent=body, fontName="Helvetica-Bold", fontSize=11,
                           leading=14, alignment=TA_CENTER, spaceAfter=0),
        kop_school=ParagraphStyle("KopSchool", parent=body, fontName="Helvetica-Bold", fontSize=12,
                                  leading=15, alignment=TA_CENTER, spaceAfter=0),
        kop_small=ParagraphStyle("KopSmall", parent=body, fontSize=9, leading=12,
                                 alignment=TA_CENTER, spaceAfter=0),
        title=ParagraphStyle("Title", parent=body, fontName="Helvetica-Bold", fontSize=14,
                             leading=18, alignment=TA_CENTER, spaceAfter=2),
        number=ParagraphStyle("Number", parent=body, alignment=TA_CENTER, spaceAfter=10),
        cell=ParagraphStyle("Cell", parent=body, alignment=TA_LEFT, spaceAfter=0),
        cell_bold=ParagraphStyle("CellBold", parent=body, fontName="Helvetica-Bold",
                                 alignment=TA_LEFT, spaceAfter=0),
        placeholder=ParagraphStyle("Placeholder", parent=body, fontName="Helvetica-Oblique",
                                   fontSize=9, textColor=GREY, alignment=TA_LEFT, spaceAfter=0),
        small_center=ParagraphStyle("SmallCenter", parent=body, fontSize=8, leading=10,
                                    alignment=TA_CENTER, spaceAfter=0),
    )


def _draw_corner_marks(canvas, doc):
    """Рисует метки «плюс» в углах рабочей области страницы."""
    canvas.saveState()
    canvas.setStrokeColor(GREY)
    canvas.setLineWidth(0.5)

    width, height = doc.pagesize
    for x, y in ((MARGIN, MARGIN), (width - MARGIN, MARGIN),
                 (MARGIN, height - MARGIN), (width - MARGIN, height - MARGIN)):
        canvas.line(x - 4, y, x + 4, y)
        canvas.line(x, y - 4, x, y + 4)

    canvas.restoreState()


class CertificateRenderer:
    """Формирует PDF SKL из CertificateData."""

    def __init__(self, assets_path: Path = None):
        """
        Args:
            assets_path: Директория, относительно которой ищутся изображения
        """
        self.assets_path = Path(assets_path) if assets_path else None
        self.styles = make_styles()

    def render(self, data: CertificateData) -> bytes:
        """
        Формирует PDF.

        Args:
            data: Собранные данные SKL

        Returns:
            bytes: Содержимое PDF

        Raises:
            RenderError: Нет обязательных полей или ошибка формирования
        """
        self._check_required(data)

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=F4,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=f"Surat Keterangan Lulus - {data.full_name}",
            author=data.school_name,
            subject="Surat Keterangan Lulus",
            keywords="SKL, surat keterangan lulus",
            invariant=1,
        )

        try:
            doc.build(self.build_story(data), onFirstPage=_draw_corner_marks, onLaterPages=_draw_corner_marks)
        except Exception as e:
            logger.error(f"Ошибка формирования PDF {data.cert_number}: {e}")
            raise RenderError(f"Gagal membuat PDF: {e}") from e

        pdf = buffer.getvalue()
        if not pdf:
            raise RenderError("Gagal membuat PDF: dokumen kosong")

        logger.info(f"Сформирован PDF {data.cert_number} ({len(pdf)} байт)")
        return pdf

    def build_story(self, data: CertificateData) -> list:
        """Собирает список flowables документа: шапка, тело, подпись."""
        story = []
        story.extend(self._header(data))
        story.extend(self._body(data))
        if data.show_grades and data.grades:
            story.extend(self._grades(data))
        story.extend(self._closing(data))
        story.append(self._signature(data))
        return story

    # ------------------------------------------------------------------ проверки

    def _check_required(self, data: CertificateData):
        missing = [name for name in REQUIRED_FIELDS if not str(getattr(data, name, "") or "").strip()]
        if missing:
            raise RenderError(f"Data sertifikat tidak lengkap: {', '.join(missing)}")

    # ------------------------------------------------------------------ изображения

    def _resolve_path(self, value: str) -> Optional[Path]:
        if not value or not value.strip():
            return None

        path = Path(value.strip())
        if not path.is_absolute() and self.assets_path is not None:
            path = self.assets_path / path
        return path

    def _load_image(self, value: str, width: float, max_height: float = None) -> Optional[Image]:
        """
        Загружает изображение с сохранением пропорций.

        Returns:
            Optional[Image]: Flowable или None, если файла нет или он не читается
        """
        path = self._resolve_path(value)
        if path is None:
            return None

        if not path.is_file():
            logger.warning(f"Изображение не найдено: {path}")
            return None

        try:
            img_width, img_height = ImageReader(str(path)).getSize()
        except Exception as e:
            logger.warning(f"Не удалось прочитать изображение {path}: {e}")
            return None

        height = width * img_height / img_width
        if max_height is not None and height > max_height:
            width, height = max_height * img_width / img_height, max_height

        return Image(str(path), width=width, height=height)

    # ------------------------------------------------------------------ шапка

    def _header(self, data: CertificateData) -> list:
        if data.use_header_image:
            header_image = self._load_image(data.header_image, FRAME_WIDTH, max_height=45 * mm)
            if header_image is not None:
                return [header_image, Spacer(1, 4 * mm)]
            logger.info("Шапка-изображение недоступна, используется текстовая шапка")

        s = self.styles
        lines = []
        if data.province_name:
            lines.append(Paragraph(escape(f"PEMERINTAH PROVINSI {data.province_name.upper()}"), s["kop"]))
        lines.append(Paragraph("DINAS PENDIDIKAN", s["kop"]))
        lines.append(Paragraph(escape(data.school_name.upper()), s["kop_school"]))
        if data.school_address:
            lines.append(Paragraph(escape(f"Jalan: {data.school_address}"), s["kop_small"]))

        contacts = []
        if data.school_email:
            contacts.append(f"E-mail: {data.school_email}")
        if data.school_website:
            contacts.append(f"Website: {data.school_website}")
        if contacts:
            lines.append(Paragraph(escape(" - ".join(contacts)), s["kop_small"]))

        logo_width = 60
        left_logo = self._load_image(data.ministry_logo, logo_width, max_height=70) or ""
        right_logo = self._load_image(data.school_logo, logo_width, max_height=70) or ""

        letterhead = Table(
            [[left_logo, lines, right_logo]],
            colWidths=[logo_width + 10, FRAME_WIDTH - 2 * (logo_width + 10), logo_width + 10],
        )
        letterhead.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("ALIGN", (0, 0), (0, 0), "LEFT"),
            ("ALIGN", (2, 0), (2, 0), "RIGHT"),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
            ("RIGHTPADDING", (0, 0), (-1, -1), 0),
        ]))

        return [
            letterhead,
            HRFlowable(width="100%", thickness=2, color=black, spaceBefore=4, spaceAfter=14),
        ]

    # ------------------------------------------------------------------ тело

    def _body(self, data: CertificateData) -> list:
        s = self.styles
        story = [
            Paragraph(escape(data.cert_header or "SURAT KETERANGAN"), s["title"]),
            Paragraph(escape(f"No. {data.cert_number}"), s["number"]),
            Paragraph(escape(plain_text(data.cert_regulation_text) or DEFAULT_REGULATION_TEXT), s["body"]),
            Spacer(1, 3 * mm),
            Paragraph(CRITERIA_INTRO, s["left"]),
        ]

        criteria = parse_criteria(data.cert_criteria_text) or default_criteria(data)
        story.extend(Paragraph(escape(item), s["item"]) for item in criteria)

        story.append(Spacer(1, 2 * mm))
        story.append(Paragraph(
            escape(plain_text(data.cert_before_student_data) or DEFAULT_BEFORE_STUDENT_TEXT), s["body"]
        ))
        story.append(Spacer(1, 3 * mm))
        story.append(self._student_table(data))
        story.append(Spacer(1, 3 * mm))
        story.append(Paragraph(
            escape(plain_text(data.cert_after_student_data) or DEFAULT_AFTER_STUDENT_TEXT), s["body"]
        ))
        story.append(Spacer(1, 6 * mm))
        story.append(self._passed_box())
        story.append(Spacer(1, 6 * mm))
        return story

    def _student_table(self, data: CertificateData) -> Table:
        s = self.styles
        rows = [
            ("Nama Siswa", data.full_name),
            ("Tempat, Tanggal Lahir", f"{data.birth_place}, {data.birth_date}"),
            ("NIS / NISN", f"{data.nis} / {data.nisn}"),
            ("Jurusan", data.major_name),
            ("Orang Tua / Wali", data.parent_name),
        ]

        table_rows = []
        for label, value in rows:
            value_style = s["cell_bold"] if label == "Nama Siswa" else s["cell"]
            table_rows.append([
                Paragraph(escape(label), s["cell"]),
                Paragraph(":", s["cell"]),
                Paragraph(escape(value), value_style),
            ])

        table = Table(table_rows, colWidths=[150, 10, FRAME_WIDTH - 175])
        table.hAlign = "RIGHT"
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
        ]))
        return table

    def _passed_box(self) -> Table:
        box = Table([["LULUS"]], colWidths=[150], rowHeights=[30])
        box.setStyle(TableStyle([
            ("BOX", (0, 0), (-1, -1), 1.5, black),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 12),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        return box

    # ------------------------------------------------------------------ оценки

    def _grades(self, data: CertificateData) -> list:
        s = self.styles
        rows = [["No", "Mata Pelajaran", "Nilai"]]
        group_rows = []

        number = 0
        current_group = None
        for line in data.grades:
            if line.group != current_group:
                current_group = line.group
                group_rows.append(len(rows))
                rows.append([current_group.value, GROUP_LABELS.get(current_group, ""), ""])

            number += 1
            rows.append([str(number), Paragraph(escape(line.subject_name), s["cell"]), f"{line.value:.2f}"])

        average = f"{data.average_grade:.2f}" if data.average_grade is not None else "0.00"
        rows.append(["RATA RATA", "", average])
        last = len(rows) - 1

        commands = [
            ("GRID", (0, 0), (-1, -1), 0.75, black),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTSIZE", (0, 0), (-1, -1), 11),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("SPAN", (0, last), (1, last)),
            ("FONTNAME", (0, last), (-1, last), "Helvetica-Bold"),
        ]
        commands.extend(("FONTNAME", (0, row), (1, row), "Helvetica-Bold") for row in group_rows)

        table = Table(rows, colWidths=[60, 300, 100], repeatRows=1)
        table.setStyle(TableStyle(commands))

        return [
            Paragraph("dengan nilai sebagai berikut :", s["left"]),
            Spacer(1, 2 * mm),
            table,
            Spacer(1, 6 * mm),
        ]

    # ------------------------------------------------------------------ подпись

    def _closing(self, data: CertificateData) -> list:
        story = [Paragraph(CLOSING_TEXT, self.styles["body"])]
        footer = plain_text(data.cert_footer)
        if footer:
            story.append(Paragraph(escape(footer), self.styles["body"]))
        story.append(Spacer(1, 10 * mm))
        return story

    def _signature_area(self, data: CertificateData) -> list:
        """Область подписи: QR (TTE), изображения подписи/печати или текст."""
        s = self.styles

        if data.use_digital_signature:
            return [self._qr_code(data, 80), Paragraph("TTE", s["small_center"])]

        signature = self._load_image(data.headmaster_signature, 160, max_height=70)
        stamp = self._load_image(data.school_stamp, 70, max_height=70)

        if signature is not None and stamp is not None:
            pair = Table([[stamp, signature]], colWidths=[70, 120])
            pair.setStyle(TableStyle([
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
            ]))
            return [pair]
        if signature is not None:
            return [signature]
        if stamp is not None:
            return [stamp]

        return [
            Spacer(1, 8 * mm),
            Paragraph("( tanda tangan dan cap sekolah )", s["placeholder"]),
            Spacer(1, 8 * mm),
        ]

    def _qr_code(self, data: CertificateData, size: float) -> Drawing:
        payload = json.dumps({
            "nisn": data.nisn,
            "nama": data.full_name,
            "sekolah": data.school_name,
            "jurusan": data.major_name,
            "tanggalLulus": format_indonesian_date(data.graduation_date) if data.graduation_date else "",
            "tanggalTerbit": data.issue_date,
            "nomorSurat": data.cert_number,
        })

        widget = QrCodeWidget(payload, barLevel="H")
        x1, y1, x2, y2 = widget.getBounds()
        drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
        drawing.add(widget)
        return drawing

    def _signature(self, data: CertificateData) -> KeepTogether:
        s = self.styles
        place = f"{data.city_name}, {data.issue_date}" if data.city_name else data.issue_date

        block = [
            Paragraph(escape(place), s["left"]),
            Paragraph("Kepala,", s["left"]),
        ]
        block.extend(self._signature_area(data))
        block.append(Paragraph(f"<u>{escape(data.headmaster_name)}</u>", s["cell_bold"]))
        if data.headmaster_nip:
            block.append(Paragraph(escape(f"NIP. {data.headmaster_nip}"), s["left"]))

        table = Table([["", block]], colWidths=[FRAME_WIDTH - 200, 200])
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ]))
        return KeepTogether([table])
