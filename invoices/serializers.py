from rest_framework import serializers

from booking.models import Customer
from .models import Invoice, InvoiceItem, Product


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "name", "description", "category", "price", "active"]


class InvoiceItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceItem
        fields = ["id", "item_type", "service", "product", "item_name", "quantity",
                  "unit_price", "total_price", "notes"]


class InvoiceSerializer(serializers.ModelSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id", "invoice_number", "customer", "customer_name", "appointment",
            "subtotal", "tax_rate", "tax_amount", "total",
            "status", "paid_at", "notes", "tax_number", "emailed_at",
            "items", "created_at", "updated_at",
        ]
        read_only_fields = fields


class InvoiceItemInputSerializer(serializers.Serializer):
    item_type = serializers.ChoiceField(choices=InvoiceItem.TYPE_CHOICES)
    item_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    item_name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    quantity = serializers.IntegerField(min_value=1, default=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0,
                                          required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceWriteSerializer(serializers.Serializer):
    """
    Create/update payload. Totals are computed server-side from the items.
    """
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    items = InvoiceItemInputSerializer(many=True, allow_empty=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100,
                                        required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    tax_number = serializers.CharField(required=False, allow_blank=True, max_length=50)


class InvoiceSendSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False, allow_blank=True)
