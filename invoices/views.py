# invoices/views.py
#
# Purpose:
# - Product catalog (public read, staff write).
# - Invoices (staff only): create/edit with server-side totals, mark
#   paid/unpaid, email to the customer.
#
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from booking.exceptions import BookingError
from booking.services.invoice_service import InvoiceService
from booking.views import IsStaffOnly, IsStaffOrReadOnly, _error, _is_staff

from .models import Invoice, Product
from .serializers import (
    InvoiceSendSerializer,
    InvoiceSerializer,
    InvoiceWriteSerializer,
    ProductSerializer,
)


class ProductViewSet(viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        qs = Product.objects.all().order_by("name")
        if not _is_staff(self.request):
            qs = qs.filter(active=True)
        return qs


class InvoiceViewSet(viewsets.ModelViewSet):
    """
    Endpoints:
    - GET/POST          /api/invoices/               (?status=paid|unpaid&customer=ID)
    - GET/PUT/PATCH/DEL /api/invoices/{id}/
    - POST              /api/invoices/{id}/mark-paid/
    - POST              /api/invoices/{id}/mark-unpaid/
    - POST              /api/invoices/{id}/send/     {"email": optional override}
    """
    serializer_class = InvoiceSerializer
    permission_classes = [IsStaffOnly]
    service = InvoiceService()

    def get_queryset(self):
        qs = Invoice.objects.select_related("customer").prefetch_related("items")
        params = self.request.query_params
        if params.get("status") in (Invoice.PAID, Invoice.UNPAID):
            qs = qs.filter(status=params["status"])
        if params.get("customer", "").isdigit():
            qs = qs.filter(customer_id=int(params["customer"]))
        return qs

    def create(self, request, *args, **kwargs):
        payload = InvoiceWriteSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        try:
            invoice = self.service.create_invoice(
                customer=data["customer"],
                items=data["items"],
                tax_rate=data.get("tax_rate"),
                notes=data.get("notes", ""),
                tax_number=data.get("tax_number", ""),
            )
        except BookingError as e:
            return _error(e)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        invoice = self.get_object()
        payload = InvoiceWriteSerializer(data=request.data, partial=kwargs.get("partial", False))
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        if "customer" in data:
            invoice.customer = data["customer"]
        try:
            invoice = self.service.update_invoice(
                invoice,
                items=data.get("items"),
                tax_rate=data.get("tax_rate"),
                notes=data.get("notes"),
                tax_number=data.get("tax_number"),
            )
        except BookingError as e:
            return _error(e)
        return Response(InvoiceSerializer(invoice).data)

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):
        invoice = self.service.mark_paid(self.get_object())
        return Response(InvoiceSerializer(invoice).data)

    @action(detail=True, methods=["post"], url_path="mark-unpaid")
    def mark_unpaid(self, request, pk=None):
        invoice = self.service.mark_unpaid(self.get_object())
        return Response(InvoiceSerializer(invoice).data)

    @action(detail=True, methods=["post"])
    def send(self, request, pk=None):
        invoice = self.get_object()
        payload = InvoiceSendSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        try:
            sent = self.service.send_invoice_email(invoice, override_email=payload.validated_data.get("email"))
        except BookingError as e:
            return _error(e)
        if not sent:
            return Response({"detail": "Email delivery failed. Please try again."},
                            status=status.HTTP_502_BAD_GATEWAY)
        return Response({"detail": "Invoice sent.", "invoice": InvoiceSerializer(invoice).data})
