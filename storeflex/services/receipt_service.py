"""Sale receipt PDF rendering."""
from io import BytesIO
from typing import Any, Dict
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from storeflex.models import PaymentMethod, Sale
from storeflex.utils.money import format_money

PAYMENT_LABELS = {
    PaymentMethod.CASH.value: 'Cash',
    PaymentMethod.CREDIT.value: 'Credit',
    PaymentMethod.CHECK.value: 'Check',
}


def generate_sale_receipt_pdf(sale: Sale, profile: Dict[str, Any]) -> BytesIO:
    """
    Render a receipt for a sale.

    Args:
        sale: Sale with its items loaded
        profile: Store profile (business_name, address, contact_number)

    Returns:
        BytesIO positioned at 0
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=f"Receipt {sale.code}"
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'ReceiptHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Business header
    elements.append(Paragraph(escape(profile.get('business_name') or 'StoreFlex Lite'), title_style))
    if profile.get('address'):
        elements.append(Paragraph(escape(profile['address']), header_style))
    if profile.get('contact_number'):
        elements.append(Paragraph(f"Tel: {escape(profile['contact_number'])}", header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Sale metadata
    info_data = [
        ['Receipt No:', sale.code],
        ['Date:', sale.sale_date.strftime('%Y-%m-%d %H:%M') if sale.sale_date else ''],
        ['Customer:', sale.customer_name],
    ]
    info_table = Table(info_data, colWidths=[2*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['Item', 'Qty', 'Unit Price', 'Amount']]
    for item in sale.items:
        table_data.append([
            item.name,
            str(item.quantity),
            format_money(item.price_per_unit),
            format_money(item.total_amount),
        ])
    items_table = Table(table_data, colWidths=[3.2*inch, 0.8*inch, 1.35*inch, 1.35*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals and payment
    totals_data = [
        ['Subtotal:', format_money(sale.subtotal)],
        [f'Tax ({sale.tax_percentage}%):', format_money(sale.tax_amount)],
        ['Service charge:', format_money(sale.service_charge)],
        ['Discount:', f"- {format_money(sale.discount_amount)}"],
        ['TOTAL:', format_money(sale.total_amount)],
        ['Payment method:', PAYMENT_LABELS.get(sale.payment_method, sale.payment_method)],
        ['Amount paid:', format_money(sale.amount_paid)],
    ]
    if sale.check_number:
        totals_data.append(['Check No:', sale.check_number])
    if sale.customer_id:
        totals_data.append(['Balance due:', format_money(sale.credit_amount)])

    total_row = 4
    totals_table = Table(totals_data, colWidths=[5.0*inch, 1.7*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, total_row), (-1, total_row), 'Helvetica-Bold'),
        ('FONTSIZE', (0, total_row), (-1, total_row), 13),
        ('TEXTCOLOR', (0, total_row), (-1, total_row), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, total_row), (-1, total_row), colors.HexColor('#E8F8F5')),
        ('BOX', (0, total_row), (-1, total_row), 1.5, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9,
                                  textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    elements.append(Paragraph("Thank you for your purchase!", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
