import os

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle


def invoice_file_name(payment):
    """``INV-<YYYYMM>-<payment id>.pdf``, keyed by the payment row."""
    created = payment.created_at
    return f"INV-{created:%Y%m}-{payment.payment_id:06d}.pdf"


def _fmt(value):
    return f"Rs. {float(value or 0):,.2f}"


def _boxed(rows, col_widths):
    table = Table(rows, colWidths=col_widths)
    table.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.25, colors.black),
        ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return table


def render_invoice(payment, appointment, customer, output_dir):
    """
    Writes the invoice PDF for a recorded payment and returns its file name.
    Errors propagate to the caller, which decides whether they matter.
    """
    os.makedirs(output_dir, exist_ok=True)
    file_name = invoice_file_name(payment)
    pdf_path = os.path.join(output_dir, file_name)

    styles = getSampleStyleSheet()
    story = []
    doc = SimpleDocTemplate(
        pdf_path,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
    )

    salon = appointment.salon
    branch = appointment.branch
    story.append(Paragraph(f"<b>{salon.name if salon else 'Salon'}</b>", styles["Title"]))
    if branch:
        story.append(Paragraph(branch.name, styles["Normal"]))
        if branch.address:
            story.append(Paragraph(branch.address, styles["Normal"]))
    phone = (branch.contact_number if branch else None) or (salon.contact_number if salon else None)
    story.append(Paragraph(f"Phone: {phone or '-'}", styles["Normal"]))
    story.append(Spacer(1, 8))

    story.append(_boxed([
        ["Invoice No", file_name.replace(".pdf", "")],
        ["Date", payment.created_at.strftime("%d-%b-%Y %H:%M")],
        ["Customer", customer.full_name],
        ["Phone", customer.phone_number or "-"],
        ["Payment Method", payment.payment_method],
    ], [110, 300]))
    story.append(Spacer(1, 10))

    lines = [["Item", "Qty", "Amount"]]
    for line in appointment.services:
        label = line.service.name if line.service else "-"
        if line.used_package:
            label += " (from package)"
        lines.append([label, "1", _fmt(line.service_amount)])
    for line in appointment.products:
        lines.append([line.name or "-", str(line.quantity), _fmt(line.total_price)])
    story.append(_boxed(lines, [260, 50, 100]))
    story.append(Spacer(1, 10))

    summary = [
        ["Service Amount", _fmt(payment.service_amount)],
        ["Product Amount", _fmt(payment.product_amount)],
        ["Additional Charges", _fmt(payment.additional_charges)],
        ["Membership Discount", "-" + _fmt(payment.membership_discount)],
        ["Coupon Discount", "-" + _fmt(payment.coupon_discount)],
        ["Additional Discount", "-" + _fmt(payment.additional_discount)],
        ["Subtotal", _fmt(payment.sub_total)],
        ["Tax", _fmt(payment.tax_amount)],
        ["Tips", _fmt(payment.tips)],
        ["Total Payable", _fmt(payment.final_total)],
    ]
    for split in payment.splits:
        summary.append([f"Paid by {split.method}", _fmt(split.amount)])
    story.append(_boxed(summary, [260, 150]))
    story.append(Spacer(1, 16))
    story.append(Paragraph("This is a system-generated invoice.", styles["Italic"]))

    doc.build(story)
    return file_name
