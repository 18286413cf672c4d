# invoices/models.py
#
# Purpose:
# - Products (parts sold alongside services) and customer invoices.
#
# Design:
# - InvoiceItem snapshots the item name and unit price, so later catalog
#   edits never change an issued invoice.
# - subtotal/tax_amount/total are stored, and recomputed from the items by
#   booking.services.invoice_service whenever the items or rate change.
# - An appointment can be invoiced once (one-to-one).
#
from decimal import ROUND_HALF_UP, Decimal

from django.core.validators import MinValueValidator
from django.db import models

from booking.models import Appointment, Customer, Service


class Product(models.Model):
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} (${self.price})"


class Invoice(models.Model):
    UNPAID = "unpaid"
    PAID = "paid"
    STATUS_CHOICES = [
        (UNPAID, "Unpaid"),
        (PAID, "Paid"),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="invoices")
    appointment = models.OneToOneField(Appointment, on_delete=models.SET_NULL, null=True, blank=True,
                                       related_name="invoice")
    invoice_number = models.CharField(max_length=20, unique=True)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0,
                                   help_text="Percent, e.g. 13.00")
    tax_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=UNPAID)
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    tax_number = models.CharField(max_length=50, blank=True, help_text="Customer/business tax number")
    emailed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.invoice_number} - {self.customer.name} (${self.total}, {self.status})"


class InvoiceItem(models.Model):
    SERVICE = "service"
    PRODUCT = "product"
    TYPE_CHOICES = [
        (SERVICE, "Service"),
        (PRODUCT, "Product"),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    item_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, blank=True)
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True)
    item_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity} x {self.item_name}"

    def save(self, *args, **kwargs):
        if self.unit_price is not None and self.quantity:
            self.total_price = (Decimal(self.quantity) * Decimal(self.unit_price)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP)
        super().save(*args, **kwargs)
