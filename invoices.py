"""
Invoice documents.

Building an invoice turns stored records into an Invoice value; rendering
turns an Invoice into PDF bytes. Both are pure: the same records always give
the same bytes, so the issue date comes from the billing record rather than
the clock and the PDF is written in reportlab's invariant mode.
"""
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from errors import InvoiceRenderError
from pricing import (
    COLOR_MODE_LABELS,
    PRINT_DELIVERY_CHARGES,
    SIDES_LABELS,
    ColorMode,
    DeliveryLocation,
    Sides,
    coerce_amount,
    paper_size_label,
    print_rate,
    resolve_delivery_charge,
    round_money,
)

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 40
TABLE_WIDTH = PAGE_WIDTH - 2 * MARGIN
LINE_HEIGHT = 12
ROW_PADDING = 8
BOX_WIDTH = 215
BOX_HEIGHT = 115
NOTE_LINE_HEIGHT = 10
MAX_NOTE_LINES = 30


@dataclass(frozen=True)
class InvoiceLine:
    label: str
    quantity: int
    unit_price: float

    @property
    def total(self) -> float:
        return round_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class Invoice:
    business_name: str
    number: str
    issued_on: Optional[datetime]
    status: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    customer_address: Optional[str]
    lines: Tuple[InvoiceLine, ...]
    delivery_title: str
    delivery_details: Tuple[str, ...]
    delivery_charge: float
    total_due: float
    notes: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return round_money(sum(line.unit_price * line.quantity for line in self.lines))

    @property
    def filename(self) -> str:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in self.number)
        return f"invoice-{safe}.pdf"


def money(value: float) -> str:
    return f"Tk {value:.2f}"


def item_label(product_name: Optional[str], order: Mapping[str, Any]) -> str:
    parts = []
    if order.get("size"):
        parts.append(f"Size: {order['size']}")
    if order.get("paper_type"):
        parts.append(f"Paper: {order['paper_type']}")
    if order.get("notes"):
        parts.append(f"Notes: {order['notes']}")
    name = product_name or "Product"
    return f"{name} ({', '.join(parts)})" if parts else name


def note_lines(notes: Optional[str]) -> List[str]:
    """Wrap billing notes to the totals box width.

    Past MAX_NOTE_LINES the text is cut and the last kept line ends in "...".
    """
    lines = simpleSplit(f"Notes: {notes or 'N/A'}", "Helvetica", 9, BOX_WIDTH - 20)
    if len(lines) > MAX_NOTE_LINES:
        lines = lines[:MAX_NOTE_LINES]
        lines[-1] = lines[-1].rstrip() + "..."
    return lines


def _issued_on(record: Mapping[str, Any]) -> Optional[datetime]:
    return (record.get("billing") or {}).get("generated_at") or record.get("created_at")


def _billing_amount(record: Mapping[str, Any]) -> Optional[float]:
    return coerce_amount((record.get("billing") or {}).get("amount"))


def build_order_invoice(primary: Mapping[str, Any], orders: Sequence[Mapping[str, Any]],
                        products: Mapping[Any, Mapping[str, Any]], business_name: str) -> Invoice:
    """Invoice for a batch of shop orders; orders whose product is gone are left out."""
    lines = []
    for order in orders:
        product = products.get(order.get("product"))
        if not product:
            continue
        lines.append(InvoiceLine(
            label=item_label(product.get("name"), order),
            quantity=int(order.get("quantity") or 1),
            unit_price=float(product.get("base_price") or 0),
        ))

    delivery_charge = None
    for order in orders:
        charge = coerce_amount(order.get("delivery_charge"))
        if charge is not None and charge > 0:
            delivery_charge = charge
            break
    if delivery_charge is None:
        delivery_charge = resolve_delivery_charge(primary.get("delivery_zone")).charge

    subtotal = sum(line.unit_price * line.quantity for line in lines)
    amount = _billing_amount(primary)
    total_due = amount if amount is not None else round_money(subtotal + delivery_charge)

    return Invoice(
        business_name=business_name,
        number=(primary.get("billing") or {}).get("number") or str(primary["_id"]),
        issued_on=_issued_on(primary),
        status=primary.get("status", "pending"),
        customer_name=primary.get("customer_name"),
        customer_phone=primary.get("customer_phone"),
        customer_address=primary.get("shipping_address"),
        lines=tuple(lines),
        delivery_title="Delivery Info",
        delivery_details=(
            f"Zone: {primary.get('delivery_zone') or 'dhaka'}",
            f"Charge: {money(delivery_charge)}",
        ),
        delivery_charge=delivery_charge,
        total_due=total_due,
        notes=(primary.get("billing") or {}).get("notes"),
    )


def build_print_invoice(print_order: Mapping[str, Any], customer: Optional[Mapping[str, Any]],
                        business_name: str) -> Invoice:
    color_mode = ColorMode(print_order["color_mode"])
    sides = Sides(print_order["sides"])
    location = DeliveryLocation(print_order["delivery_location"])
    descriptors = [paper_size_label(print_order.get("paper_size")), COLOR_MODE_LABELS[color_mode], SIDES_LABELS[sides]]
    line = InvoiceLine(
        label=f"{print_order.get('description') or 'Print job'} ({', '.join(descriptors)})",
        quantity=int(print_order.get("quantity") or 1),
        unit_price=print_rate(color_mode, sides),
    )
    delivery_charge = PRINT_DELIVERY_CHARGES[location]
    amount = _billing_amount(print_order)
    total_due = amount if amount is not None else round_money(line.total + delivery_charge)
    customer = customer or {}

    return Invoice(
        business_name=business_name,
        number=(print_order.get("billing") or {}).get("number") or str(print_order["_id"]),
        issued_on=_issued_on(print_order),
        status=print_order.get("status", "pending"),
        customer_name=customer.get("name"),
        customer_phone=customer.get("phone"),
        customer_address=print_order.get("delivery_address") or location.value,
        lines=(line,),
        delivery_title="Collection Info",
        delivery_details=(
            f"Location: {location.value}",
            f"Security deposit: {money(float(print_order.get('security_amount') or 0))}",
        ),
        delivery_charge=delivery_charge,
        total_due=total_due,
        notes=(print_order.get("billing") or {}).get("notes"),
    )


class _InvoiceCanvas:
    """Draws an Invoice top to bottom, starting new pages as rows run out."""

    columns = (
        ("Product", MARGIN + 10, 240, "left"),
        ("Qty", 300, 50, "center"),
        ("Unit Price", 360, 80, "center"),
        ("Total", 450, 90, "center"),
    )

    def __init__(self, invoice: Invoice):
        self.invoice = invoice
        self.buffer = io.BytesIO()
        self.pdf = canvas.Canvas(self.buffer, pagesize=A4, invariant=1)
        self.pdf.setTitle(f"Invoice {invoice.number}")
        self.pdf.setAuthor(invoice.business_name)
        self.page = 1
        self.y = PAGE_HEIGHT - MARGIN

    def _text(self, text: str, x: float, y: float, width: float = 0, align: str = "left") -> None:
        if align == "center":
            self.pdf.drawCentredString(x + width / 2, y, text)
        elif align == "right":
            self.pdf.drawRightString(x + width, y, text)
        else:
            self.pdf.drawString(x, y, text)

    def _new_page(self) -> None:
        self._page_number()
        self.pdf.showPage()
        self.page += 1
        self.y = PAGE_HEIGHT - MARGIN

    def _page_number(self) -> None:
        self.pdf.setFont("Helvetica", 8)
        self.pdf.setFillColor(HexColor("#999999"))
        self._text(f"Page {self.page}", MARGIN, MARGIN / 2, TABLE_WIDTH, "right")
        self.pdf.setFillColor(HexColor("#000000"))

    def _ensure_space(self, height: float) -> bool:
        if self.y - height < MARGIN + 20:
            self._new_page()
            return True
        return False

    def header(self) -> None:
        invoice = self.invoice
        self.pdf.setFont("Helvetica-Bold", 22)
        self.y -= 22
        self._text(f"{invoice.business_name} Invoice", MARGIN, self.y, TABLE_WIDTH, "center")
        self.y -= 30

        self.pdf.setFont("Helvetica", 10)
        self.pdf.setFillColor(HexColor("#333333"))
        issued = invoice.issued_on.strftime("%d/%m/%Y") if invoice.issued_on else "N/A"
        for text in (f"Invoice #: {invoice.number}", f"Date: {issued}", f"Status: {invoice.status}"):
            self._text(text, MARGIN, self.y)
            self.y -= 14

        self.y -= 10
        self.pdf.setFont("Helvetica-Bold", 10)
        self._text("Customer Details:", MARGIN, self.y)
        self.y -= 14
        self.pdf.setFont("Helvetica", 10)
        for text in (
            f"Name: {invoice.customer_name or 'N/A'}",
            f"Phone: {invoice.customer_phone or 'N/A'}",
        ):
            self._text(text, MARGIN, self.y)
            self.y -= 14
        for chunk in simpleSplit(f"Address: {invoice.customer_address or 'N/A'}", "Helvetica", 10, TABLE_WIDTH):
            self._text(chunk, MARGIN, self.y)
            self.y -= 14
        self.pdf.setFillColor(HexColor("#000000"))
        self.y -= 16

    def table_header(self) -> None:
        self.pdf.setFillColor(HexColor("#f3f4f6"))
        self.pdf.rect(MARGIN, self.y - 20, TABLE_WIDTH, 20, stroke=0, fill=1)
        self.pdf.setFillColor(HexColor("#000000"))
        self.pdf.setFont("Helvetica-Bold", 10)
        for title, x, width, align in self.columns:
            self._text(title, x, self.y - 14, width, align)
        self.y -= 25

    def rows(self) -> None:
        self.table_header()
        for line in self.invoice.lines:
            label_lines = simpleSplit(line.label, "Helvetica", 10, self.columns[0][2])
            height = len(label_lines) * LINE_HEIGHT + ROW_PADDING
            if self._ensure_space(height):
                self.table_header()
            self.pdf.setFont("Helvetica", 10)
            top = self.y - LINE_HEIGHT + 2
            for i, chunk in enumerate(label_lines):
                self._text(chunk, self.columns[0][1], top - i * LINE_HEIGHT)
            values = (str(line.quantity), money(line.unit_price), money(line.total))
            for (_, x, width, align), value in zip(self.columns[1:], values):
                self._text(value, x, top, width, align)
            self.y -= height

    def totals(self) -> None:
        invoice = self.invoice
        self.y -= 22
        notes = note_lines(invoice.notes)
        box_height = BOX_HEIGHT + (len(notes) - 1) * NOTE_LINE_HEIGHT
        self._ensure_space(box_height + 40)
        box_x = PAGE_WIDTH - MARGIN - BOX_WIDTH
        box_top = self.y
        self.pdf.setStrokeColor(HexColor("#e5e7eb"))
        self.pdf.rect(box_x, box_top - box_height, BOX_WIDTH, box_height, stroke=1, fill=0)

        x = box_x + 10
        self.pdf.setFont("Helvetica-Bold", 10)
        self._text(invoice.delivery_title, x, box_top - 18)
        self.pdf.setFont("Helvetica", 9)
        for i, detail in enumerate(invoice.delivery_details[:2]):
            self._text(detail, x, box_top - 31 - i * 10)

        self.pdf.setFont("Helvetica-Bold", 10)
        self._text("Payment Summary", x, box_top - 68)
        self.pdf.setFont("Helvetica", 9)
        self._text(f"Subtotal: {money(invoice.subtotal)}", x, box_top - 81)
        due = f"Total Due: {money(invoice.total_due)}"
        self._text(due, x, box_top - 93)
        self.pdf.line(x, box_top - 95, x + self.pdf.stringWidth(due, "Helvetica", 9), box_top - 95)
        for i, chunk in enumerate(notes):
            self._text(chunk, x, box_top - 105 - i * NOTE_LINE_HEIGHT)
        self.y = box_top - box_height

    def footer(self) -> None:
        self.y -= 40
        self._ensure_space(20)
        self.pdf.setFont("Helvetica", 10)
        self.pdf.setFillColor(HexColor("#666666"))
        self._text(f"Thank you for choosing {self.invoice.business_name}!", MARGIN, self.y, TABLE_WIDTH, "center")
        self.pdf.setFillColor(HexColor("#000000"))

    def render(self) -> bytes:
        self.header()
        self.rows()
        self.totals()
        self.footer()
        self._page_number()
        self.pdf.showPage()
        self.pdf.save()
        return self.buffer.getvalue()


def render_invoice_pdf(invoice: Invoice) -> bytes:
    try:
        return _InvoiceCanvas(invoice).render()
    except Exception as exc:
        logger.exception("Invoice %s could not be rendered", invoice.number)
        raise InvoiceRenderError(invoice.number, str(exc)) from exc


def product_lookup(db, orders: List[Dict[str, Any]]) -> Dict[Any, Dict[str, Any]]:
    ids = list({o.get("product") for o in orders if o.get("product") is not None})
    if not ids:
        return {}
    return {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}}, {"name": 1, "base_price": 1})}
