"""Render a certificate of completion as a one-page PDF."""

from __future__ import annotations

import io

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

from course_platform.models.enrollment import CertificateDetails

_PRIMARY = colors.HexColor("#2980b9")
_SECONDARY = colors.HexColor("#34495e")
_GOLD = colors.HexColor("#f1c40f")


def render_certificate_pdf(details: CertificateDetails) -> bytes:
    buf = io.BytesIO()
    width, height = landscape(A4)
    pdf = canvas.Canvas(buf, pagesize=(width, height))
    pdf.setTitle(f"Certificate {details.code}")
    pdf.setAuthor("course-platform")

    # double frame
    pdf.setStrokeColor(_PRIMARY)
    pdf.setLineWidth(6)
    pdf.rect(30, 30, width - 60, height - 60)
    pdf.setStrokeColor(_GOLD)
    pdf.setLineWidth(2)
    pdf.rect(42, 42, width - 84, height - 84)

    def centered(text: str, font: str, size: int, y: float, color) -> None:
        pdf.setFont(font, size)
        pdf.setFillColor(color)
        pdf.drawCentredString(width / 2, y, text)

    centered("CERTIFICATE OF COMPLETION", "Helvetica-Bold", 34, height - 130, _PRIMARY)
    centered("This certifies that", "Helvetica", 18, height - 190, _SECONDARY)
    centered(details.student_name, "Helvetica-Bold", 30, height - 240, _SECONDARY)
    centered(
        "has successfully completed the course",
        "Helvetica",
        18,
        height - 290,
        _SECONDARY,
    )
    centered(details.course_title, "Helvetica-Bold", 26, height - 340, _PRIMARY)
    centered(
        f"Issued on {details.issued_at.strftime('%B %d, %Y')}",
        "Helvetica",
        14,
        120,
        _SECONDARY,
    )
    centered(f"Certificate code: {details.code}", "Courier", 12, 95, _SECONDARY)

    pdf.showPage()
    pdf.save()
    return buf.getvalue()
