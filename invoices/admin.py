from django.contrib import admin
from booking.services.invoice_service import InvoiceService
from .models import Invoice, InvoiceItem, Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "category", "price", "active")
    list_filter = ("active", "category")
    search_fields = ("name",)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ("total_price",)


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "customer", "total", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("invoice_number", "customer__name", "customer__phone")
    # Totals are computed by InvoiceService from the items.
    readonly_fields = ("subtotal", "tax_amount", "total", "paid_at", "emailed_at")
    inlines = [InvoiceItemInline]

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        InvoiceService().update_invoice(form.instance)
