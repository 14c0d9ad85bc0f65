from io import BytesIO
from reportlab.pdfgen import canvas
from reportlab.lib.units import mm
from models.order_management import Order, OrderType
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

RECEIPT_WIDTH = 80 * mm
LINE_HEIGHT = 4 * mm
MAX_NAME_LENGTH = 24


def _money(amount) -> str:
    return f"Rs.{(amount or 0):.2f}"


def _enum_text(value) -> str:
    if value is None:
        return "N/A"
    return value.value if hasattr(value, "value") else str(value)


def receipt_height(order: Order) -> float:
    """Fixed header/footer plus one line per item and per coupon."""
    lines = 26 + len(order.items) + len(order.applied_coupons)
    return lines * LINE_HEIGHT


def generate_receipt_pdf(order: Order) -> BytesIO:
    """
    Generate an 80mm thermal-printer receipt for an order
    with its items, taxes, coupons and payment method.
    """
    buffer = BytesIO()
    height = receipt_height(order)
    c = canvas.Canvas(buffer, pagesize=(RECEIPT_WIDTH, height))

    try:
        margin = 4 * mm
        right = RECEIPT_WIDTH - margin
        center = RECEIPT_WIDTH / 2
        y_pos = height - margin - LINE_HEIGHT
        location = order.location

        # Business Header
        c.setFont("Helvetica-Bold", 11)
        c.drawCentredString(center, y_pos, location.name)
        y_pos -= LINE_HEIGHT * 1.2
        c.setFont("Helvetica", 7)
        for line in (location.address, location.city, location.phone and f"Contact: {location.phone}"):
            if line:
                c.drawCentredString(center, y_pos, line)
                y_pos -= LINE_HEIGHT

        # Order Details
        y_pos -= LINE_HEIGHT * 0.5
        stamp = order.settled_at or order.completed_at or order.created_at or datetime.utcnow()
        c.setFont("Helvetica-Bold", 8)
        c.drawString(margin, y_pos, f"Bill No: {order.order_number}")
        c.drawRightString(right, y_pos, stamp.strftime('%d-%m-%Y'))
        y_pos -= LINE_HEIGHT
        c.setFont("Helvetica", 7)
        c.drawString(margin, y_pos, f"Time: {stamp.strftime('%I:%M %p')}")
        if order.order_type == OrderType.DINE_IN:
            c.drawRightString(right, y_pos, ", ".join(order.table_names))
        else:
            c.drawRightString(right, y_pos, "Delivery")
        y_pos -= LINE_HEIGHT
        if order.customer_name:
            c.drawString(margin, y_pos, f"Customer: {order.customer_name}")
            y_pos -= LINE_HEIGHT

        # Item Header
        y_pos -= LINE_HEIGHT * 0.5
        c.setFont("Helvetica-Bold", 7)
        c.drawString(margin, y_pos, "ITEM")
        c.drawRightString(center + 10 * mm, y_pos, "QTY")
        c.drawRightString(right, y_pos, "AMOUNT")
        y_pos -= LINE_HEIGHT * 0.5
        c.line(margin, y_pos, right, y_pos)
        y_pos -= LINE_HEIGHT

        # Items List
        c.setFont("Helvetica", 7)
        for item in order.items:
            item_name = item.name if not item.portion_size else f"{item.name} ({item.portion_size})"
            if len(item_name) > MAX_NAME_LENGTH:
                item_name = item_name[:MAX_NAME_LENGTH - 3] + "..."
            c.drawString(margin, y_pos, item_name)
            c.drawRightString(center + 10 * mm, y_pos, str(item.quantity))
            c.drawRightString(right, y_pos, _money(item.line_total))
            y_pos -= LINE_HEIGHT

        # Totals and Taxes
        c.line(margin, y_pos + LINE_HEIGHT * 0.5, right, y_pos + LINE_HEIGHT * 0.5)
        y_pos -= LINE_HEIGHT * 0.5
        rows = [("Subtotal:", order.subtotal)]
        if order.cgst_amount:
            rows.append((f"CGST ({location.cgst_rate:g}%):", order.cgst_amount))
        if order.sgst_amount:
            rows.append((f"SGST ({location.sgst_rate:g}%):", order.sgst_amount))
        if order.service_charge:
            rows.append((f"Service Charge ({location.service_charge_rate:g}%):", order.service_charge))
        for label, amount in rows:
            c.drawString(margin, y_pos, label)
            c.drawRightString(right, y_pos, _money(amount))
            y_pos -= LINE_HEIGHT

        for applied in order.applied_coupons:
            c.drawString(margin, y_pos, f"Coupon {applied.name}:")
            c.drawRightString(right, y_pos, f"-{_money(applied.discount_amount)}")
            y_pos -= LINE_HEIGHT
        if order.coupon_discount:
            c.drawString(margin, y_pos, "Total Discount:")
            c.drawRightString(right, y_pos, f"-{_money(order.coupon_discount)}")
            y_pos -= LINE_HEIGHT

        c.setFont("Helvetica-Bold", 9)
        c.drawString(margin, y_pos, "NET TOTAL:")
        c.drawRightString(right, y_pos, _money(order.total_amount))
        y_pos -= LINE_HEIGHT * 1.5

        # Payment Info
        c.setFont("Helvetica", 7)
        method = order.payment_method or order.pending_payment_method
        c.drawString(margin, y_pos, f"Payment Method: {_enum_text(method).upper()}")
        if order.amount_paid is not None:
            c.drawRightString(right, y_pos, f"Paid: {_money(order.amount_paid)}")
        y_pos -= LINE_HEIGHT

        # Footer
        c.line(margin, y_pos, right, y_pos)
        y_pos -= LINE_HEIGHT
        c.drawCentredString(center, y_pos, "Thank you for your visit!")

        c.showPage()
        c.save()
        buffer.seek(0)
        return buffer

    except Exception as e:
        logger.error(f"Error generating receipt PDF for order {order.id}: {str(e)}")
        raise
