# FeeManagement/receipts.py
from io import BytesIO

from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from management.services import school_info


def receipt_pdf(payment):
    """Render a successful payment as an A5 receipt and return the PDF bytes"""
    school = school_info()
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A5)
    width, height = A5
    x_margin = 14 * mm
    content_gap = 6 * mm

    brand = colors.HexColor("#1f2937")
    light_bg = colors.HexColor("#f3f4f6")
    muted = colors.HexColor("#6b7280")

    # Header bar
    header_h = 26 * mm
    c.setFillColor(brand)
    c.rect(0, height - header_h, width, header_h, fill=1, stroke=0)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(x_margin, height - 11 * mm, school['name'])
    sub = " | ".join(part for part in [school['address'], school['phone'], school['email']] if part)
    c.setFont("Helvetica", 8.5)
    c.drawString(x_margin, height - 16 * mm, sub or "Official Payment Receipt")

    # PAID badge on the right
    badge_w, badge_h = 22 * mm, 8 * mm
    badge_x = width - x_margin - badge_w
    badge_y = height - 12 * mm - (badge_h / 2)
    c.setFillColor(colors.white)
    c.roundRect(badge_x, badge_y, badge_w, badge_h, 2 * mm, fill=1, stroke=0)
    c.setFillColor(brand)
    c.setFont("Helvetica-Bold", 8.5)
    c.drawCentredString(badge_x + badge_w / 2, badge_y + 2.6 * mm, "PAID")

    y = height - header_h - 10 * mm

    # Amount card
    card_h = 14 * mm
    card_y = y - card_h
    c.setFillColor(light_bg)
    c.roundRect(x_margin, card_y, width - 2 * x_margin, card_h, 3 * mm, fill=1, stroke=0)
    c.setFont("Helvetica", 9)
    c.setFillColor(muted)
    c.drawCentredString(width / 2, card_y + card_h - 5 * mm, "Amount Paid")
    c.setFillColor(colors.black)
    c.setFont("Helvetica-Bold", 16)
    c.drawCentredString(width / 2, card_y + 4.8 * mm, f"{payment.currency} {payment.amount:,.2f}")
    y = card_y - content_gap

    def separator():
        nonlocal y
        c.setStrokeColor(colors.lightgrey)
        c.setDash(1, 2)
        c.line(x_margin, y, width - x_margin, y)
        c.setDash()
        y -= content_gap

    def draw_kv(label, value):
        nonlocal y
        c.setFont("Helvetica", 9)
        c.setFillColor(muted)
        c.drawString(x_margin, y, label)
        c.setFillColor(colors.black)
        c.setFont("Helvetica-Bold", 10)
        c.drawRightString(width - x_margin, y, value)
        y -= 6.5 * mm

    separator()
    paid_at = timezone.localtime(payment.paid_at) if payment.paid_at else None
    student = payment.student
    draw_kv("Receipt No.", payment.receipt_number)
    draw_kv("Date", paid_at.strftime("%Y-%m-%d %H:%M") if paid_at else "N/A")
    draw_kv("Student", student.full_name)
    draw_kv("Admission No.", student.admission_number)
    draw_kv("Class", str(student.classroom) if student.classroom else "N/A")
    draw_kv("Fee", payment.fee.name)
    draw_kv("Method", payment.get_method_display())
    draw_kv("Reference", payment.payment_reference)
    if payment.fee.term:
        draw_kv("Term", str(payment.fee.term))

    y += 1.5 * mm
    separator()
    draw_kv("Fee Amount", f"{payment.currency} {payment.fee_amount:,.2f}")
    draw_kv("Balance Before", f"{payment.currency} {payment.balance_before:,.2f}")
    draw_kv("Balance After", f"{payment.currency} {payment.balance_after:,.2f}")

    c.setFillColor(muted)
    c.setFont("Helvetica", 9)
    c.drawCentredString(width / 2, max(y, 18 * mm), "Thank you for your payment.")
    c.setFont("Helvetica", 7.5)
    c.drawCentredString(width / 2, 10 * mm, f"Generated {timezone.localtime():%Y-%m-%d %H:%M}")

    c.showPage()
    c.save()
    pdf_bytes = buf.getvalue()
    buf.close()
    return pdf_bytes
