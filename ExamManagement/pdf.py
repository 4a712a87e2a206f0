# ExamManagement/pdf.py
import io
import os

from django.conf import settings
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from management.services import school_info


def school_header(styles, school, width=400):
    """Logo and school details side by side"""
    school_name_style = ParagraphStyle('schoolName', parent=styles['Title'], alignment=1, fontSize=16, spaceAfter=2)
    school_info_style = ParagraphStyle('schoolInfo', parent=styles['Normal'], alignment=1, fontSize=10, textColor=colors.grey)

    logo_path = os.path.join(settings.BASE_DIR, 'static', 'logo.png')
    logo_width = 0.8 * inch
    logo_height = 0.8 * inch
    if os.path.exists(logo_path):
        logo = Image(logo_path, width=logo_width, height=logo_height)
    else:
        logo = Paragraph("", styles['Normal'])

    contact = " | ".join(part for part in [
        f"Phone: {school['phone']}" if school.get('phone') else '',
        f"Email: {school['email']}" if school.get('email') else '',
    ] if part)
    details = [Paragraph(school['name'], school_name_style)]
    if school.get('address'):
        details.append(Paragraph(school['address'], school_info_style))
    if contact:
        details.append(Paragraph(contact, school_info_style))

    header_table = Table([[logo, details]], colWidths=[logo_width, width])
    header_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (0, 0), (0, 0), 'CENTER'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (0, 0), 2),
        ('RIGHTPADDING', (1, 0), (1, 0), 0),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 0),
        ('TOPPADDING', (0, 0), (-1, -1), 0),
    ]))
    return header_table


def timetable_pdf(timetable):
    """Render an exam timetable as landscape A4 PDF bytes"""
    class_names, dates, rows = timetable.grid()

    table_data = [["Date"] + class_names]
    for d, row in zip(dates, rows):
        table_data.append([d.strftime('%a %d %b %Y')] + row)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), leftMargin=36, rightMargin=36, topMargin=72, bottomMargin=36)
    elements = []
    styles = getSampleStyleSheet()

    exam_time_style = ParagraphStyle(
        'examTime',
        parent=styles['Normal'],
        alignment=TA_LEFT,
        fontName='Helvetica-Bold',
        fontSize=10,
        spaceAfter=12
    )

    elements.append(school_header(styles, school_info()))
    if timetable.exam_time:
        elements.append(Paragraph(f"Time: {timetable.exam_time}", exam_time_style))
    elements.append(Spacer(1, 12))

    title_style = ParagraphStyle('timetableTitle', parent=styles['Title'], alignment=1)
    elements.append(Paragraph(timetable.title, title_style))
    if timetable.term:
        elements.append(Paragraph(str(timetable.term), ParagraphStyle('term', parent=styles['Normal'], alignment=1)))
    elements.append(Spacer(1, 12))

    if timetable.note_above:
        elements.append(Paragraph(timetable.note_above, styles['Normal']))
        elements.append(Spacer(1, 12))

    # Date column fixed, classes share the rest
    page_width = landscape(A4)[0] - doc.leftMargin - doc.rightMargin
    num_classes = len(class_names)
    if num_classes == 0:
        col_widths = [page_width]
    elif num_classes == 1:
        col_widths = [page_width * 0.3, page_width * 0.7]
    else:
        date_col_width = page_width * 0.15
        other_col_width = (page_width - date_col_width) / num_classes
        col_widths = [date_col_width] + [other_col_width] * num_classes

    table = Table(table_data, repeatRows=1, colWidths=col_widths)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f2937')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('TOPPADDING', (0, 0), (-1, 0), 8),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 12))

    if timetable.note_below:
        elements.append(Paragraph(timetable.note_below, styles['Normal']))

    doc.build(elements)
    return buffer.getvalue()
