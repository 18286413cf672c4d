"""
invoice_service.py
------------------
Invoice math and invoice operations.

Math (all Decimal, rounded half-up to cents):
    line total = quantity * unit_price
    subtotal   = sum of line totals
    tax_amount = subtotal * tax_rate / 100
    total      = subtotal + tax_amount

Totals are never taken from the caller; they are recomputed from the items
whenever an invoice is created or its items/rate change.

Invoice numbers are INV-00001, INV-00002, ... (one more than the highest
existing INV-number).
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from configmgr.settings_store import get_setting
from invoices.models import Invoice, InvoiceItem, Product

from ..exceptions import InvalidInputError
from ..models import Appointment, Service
from ..phone_utils import format_phone_display, normalize_phone

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
INVOICE_NUMBER_RE = re.compile(r"^INV-(\d+)$")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value, label, maximum=None) -> Decimal:
    """Non-negative decimal from a str/int/Decimal; InvalidInputError otherwise."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid {label}: {value!r}.")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError(f"Invalid {label}: {value!r}.") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"{label.capitalize()} must be zero or more.")
    if maximum is not None and amount > maximum:
        raise InvalidInputError(f"{label.capitalize()} cannot exceed {maximum}.")
    return amount


def compute_totals(lines, tax_rate):
    """
    lines: iterable of (quantity, unit_price).
    Returns (subtotal, tax_amount, total), each rounded to cents.
    """
    subtotal = money(sum((Decimal(q) * Decimal(p) for q, p in lines), Decimal("0")))
    tax_amount = money(subtotal * Decimal(tax_rate) / 100)
    return subtotal, tax_amount, subtotal + tax_amount


def default_tax_rate() -> Decimal:
    raw = get_setting("INVOICE_TAX_RATE", "0")
    try:
        return parse_amount(raw, "tax rate", maximum=Decimal("100"))
    except InvalidInputError:
        logger.warning("Ignoring invalid INVOICE_TAX_RATE=%r", raw)
        return Decimal("0")


def next_invoice_number() -> str:
    highest = 0
    for number in Invoice.objects.filter(invoice_number__startswith="INV-").values_list("invoice_number", flat=True):
        match = INVOICE_NUMBER_RE.match(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"INV-{highest + 1:05d}"


def _build_item(raw) -> InvoiceItem:
    """
    One line from a dict:
      {"item_type": "service"|"product", "item_id": 3, "quantity": 2,
       "unit_price": "19.99", "item_name": "...", "notes": "..."}
    item_id fills in the catalog name/price; without it, item_name and
    unit_price are required (custom line).
    """
    item_type = raw.get("item_type")
    if item_type not in (InvoiceItem.SERVICE, InvoiceItem.PRODUCT):
        raise InvalidInputError("Each item needs item_type 'service' or 'product'.")

    model = Service if item_type == InvoiceItem.SERVICE else Product
    catalog = None
    if raw.get("item_id") not in (None, ""):
        try:
            catalog = model.objects.get(pk=int(raw["item_id"]))
        except (TypeError, ValueError, model.DoesNotExist):
            raise InvalidInputError(f"Unknown {item_type} {raw['item_id']!r}.") from None

    name = (raw.get("item_name") or (catalog.name if catalog else "")).strip()
    if not name:
        raise InvalidInputError("Custom items need an item_name.")

    if raw.get("unit_price") not in (None, ""):
        unit_price = money(parse_amount(raw["unit_price"], "unit price"))
    elif catalog is not None:
        unit_price = catalog.price
    else:
        raise InvalidInputError(f"Item {name!r} needs a unit_price.")

    try:
        quantity = int(raw.get("quantity", 1))
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid quantity for {name!r}.") from None
    if quantity < 1:
        raise InvalidInputError(f"Quantity for {name!r} must be at least 1.")

    return InvoiceItem(
        item_type=item_type,
        service=catalog if item_type == InvoiceItem.SERVICE else None,
        product=catalog if item_type == InvoiceItem.PRODUCT else None,
        item_name=name,
        quantity=quantity,
        unit_price=unit_price,
        total_price=money(quantity * unit_price),
        notes=raw.get("notes") or "",
    )


class InvoiceService:
    """
    Create, edit, settle and email invoices.
    """

    @transaction.atomic
    def create_invoice(self, customer, items, tax_rate=None, notes="", tax_number="", appointment=None):
        """
        Raises:
            InvalidInputError: no customer, no items, or a bad item/rate.
        """
        if customer is None:
            raise InvalidInputError("An invoice needs a customer.")
        lines = [_build_item(raw) for raw in (items or [])]
        if not lines:
            raise InvalidInputError("An invoice needs at least one item.")

        rate = default_tax_rate() if tax_rate is None else parse_amount(tax_rate, "tax rate", Decimal("100"))
        subtotal, tax_amount, total = compute_totals(((l.quantity, l.unit_price) for l in lines), rate)

        invoice = Invoice.objects.create(
            customer=customer,
            appointment=appointment,
            invoice_number=next_invoice_number(),
            subtotal=subtotal,
            tax_rate=rate,
            tax_amount=tax_amount,
            total=total,
            notes=notes or "",
            tax_number=tax_number or "",
        )
        for line in lines:
            line.invoice = invoice
        InvoiceItem.objects.bulk_create(lines)
        logger.info("Created invoice %s for customer #%s (total %s)", invoice.invoice_number, customer.pk, total)
        return invoice

    @transaction.atomic
    def update_invoice(self, invoice, items=None, tax_rate=None, notes=None, tax_number=None):
        """Replace items and/or rate and recompute the totals."""
        if items is not None:
            lines = [_build_item(raw) for raw in items]
            if not lines:
                raise InvalidInputError("An invoice needs at least one item.")
            invoice.items.all().delete()
            for line in lines:
                line.invoice = invoice
            InvoiceItem.objects.bulk_create(lines)
        if tax_rate is not None:
            invoice.tax_rate = parse_amount(tax_rate, "tax rate", Decimal("100"))
        if notes is not None:
            invoice.notes = notes
        if tax_number is not None:
            invoice.tax_number = tax_number

        invoice.subtotal, invoice.tax_amount, invoice.total = compute_totals(
            invoice.items.values_list("quantity", "unit_price"), invoice.tax_rate
        )
        invoice.save()
        return invoice

    def create_from_appointment(self, appointment):
        """
        Invoice a completed appointment: one line per booked service, at the
        price snapshotted on the appointment.
        """
        if appointment.status != Appointment.COMPLETED:
            raise InvalidInputError("Only completed appointments can be invoiced.")
        if appointment.customer is None:
            raise InvalidInputError("This appointment has no customer to invoice.")
        if Invoice.objects.filter(appointment=appointment).exists():
            raise InvalidInputError("This appointment already has an invoice.")

        items = [
            {
                "item_type": InvoiceItem.SERVICE,
                "item_id": line.service_id,
                "item_name": line.service_name,
                "quantity": 1,
                "unit_price": line.price,
            }
            for line in appointment.services.all()
        ]
        return self.create_invoice(appointment.customer, items, appointment=appointment)

    def mark_paid(self, invoice):
        invoice.status = Invoice.PAID
        invoice.paid_at = timezone.now()
        invoice.save(update_fields=["status", "paid_at", "updated_at"])
        return invoice

    def mark_unpaid(self, invoice):
        invoice.status = Invoice.UNPAID
        invoice.paid_at = None
        invoice.save(update_fields=["status", "paid_at", "updated_at"])
        return invoice

    # ---------- email ----------
    def render_email(self, invoice):
        shop_name = get_setting("SHOP_NAME", "our shop")
        shop_phone = format_phone_display(normalize_phone(get_setting("SHOP_ADMIN_PHONE", "")))
        lines = [
            f"Hi {invoice.customer.name},",
            "",
            f"Thank you for your business. This is regarding Invoice {invoice.invoice_number} "
            f"dated {timezone.localtime(invoice.created_at):%B %d, %Y} for ${invoice.total}.",
            "",
        ]
        for item in invoice.items.all():
            lines.append(f"  {item.quantity} x {item.item_name} @ ${item.unit_price} = ${item.total_price}")
        lines += [
            "",
            f"Subtotal: ${invoice.subtotal}",
            f"Tax ({invoice.tax_rate}%): ${invoice.tax_amount}",
            f"Total: ${invoice.total}",
            f"Status: {invoice.get_status_display()}",
            "",
            shop_name,
            shop_phone,
        ]
        subject = f"Invoice #{invoice.invoice_number} from {shop_name}"
        return subject, "\n".join(lines)

    def send_invoice_email(self, invoice, override_email=None) -> bool:
        """
        Email the invoice to the customer (or `override_email`).

        Raises:
            InvalidInputError: no recipient address.
        Returns False when the mail backend fails (logged).
        """
        recipient = (override_email or invoice.customer.email or "").strip()
        if not recipient:
            raise InvalidInputError("No recipient email provided.")

        subject, body = self.render_email(invoice)
        try:
            send_mail(
                subject=subject,
                message=body,
                from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
                recipient_list=[recipient],
                fail_silently=False,
            )
        except Exception:
            logger.exception("Invoice %s email to %s failed", invoice.invoice_number, recipient)
            return False

        invoice.emailed_at = timezone.now()
        invoice.save(update_fields=["emailed_at", "updated_at"])
        logger.info("Invoice %s emailed to %s", invoice.invoice_number, recipient)
        return True
