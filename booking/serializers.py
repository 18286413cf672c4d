from rest_framework import serializers
from .models import Customer, Service, ServiceSetting, Staff, Appointment, AppointmentService
from .phone_utils import normalize_phone


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id", "name", "phone", "email",
            "vehicle_make", "vehicle_model", "vehicle_year", "vehicle_plate", "vin",
        ]

    def validate_phone(self, value):
        phone = normalize_phone(value)
        if not phone:
            raise serializers.ValidationError("Phone number is required.")
        return phone


class ServiceSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = ServiceSetting
        fields = ["duration_minutes", "buffer_minutes", "is_bookable", "max_concurrent", "requires_vehicle_info"]


class ServiceSerializer(serializers.ModelSerializer):
    setting = ServiceSettingSerializer(required=False)

    class Meta:
        model = Service
        fields = ["id", "name", "description", "category", "price", "active", "setting"]

    def create(self, validated_data):
        setting_data = validated_data.pop("setting", None) or {}
        service = Service.objects.create(**validated_data)
        ServiceSetting.objects.create(service=service, **setting_data)
        return service

    def update(self, instance, validated_data):
        setting_data = validated_data.pop("setting", None)
        instance = super().update(instance, validated_data)
        if setting_data:
            setting, _ = ServiceSetting.objects.get_or_create(service=instance)
            for key, value in setting_data.items():
                setattr(setting, key, value)
            setting.save()
        return instance


class StaffSerializer(serializers.ModelSerializer):
    class Meta:
        model = Staff
        fields = ["id", "name", "phone", "email", "role", "is_active", "color", "bio"]


class AppointmentServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppointmentService
        fields = ["service", "service_name", "duration_minutes", "price", "sequence_order"]


class AppointmentSerializer(serializers.ModelSerializer):
    services = AppointmentServiceSerializer(many=True, read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "customer",
            "staff",
            "appointment_date",
            "start_time",
            "end_time",
            "status",
            "total_duration_minutes",
            "total_price",
            "customer_notes",
            "internal_notes",
            "cancellation_reason",
            "cancelled_at",
            "services",
            "created_at",
        ]
        read_only_fields = fields


class AppointmentCreateSerializer(serializers.Serializer):
    """
    Booking request: who, with whom, when, and which services.
    Duration/price/end time are derived by BookingManager.
    """
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all())
    staff = serializers.PrimaryKeyRelatedField(queryset=Staff.objects.filter(is_active=True),
                                               allow_null=True, required=False)
    appointment_date = serializers.DateField()
    start_time = serializers.TimeField()
    services = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    customer_notes = serializers.CharField(required=False, allow_blank=True, default="")


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Appointment.STATUS_CHOICES)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class CustomerCancelSerializer(serializers.Serializer):
    phone = serializers.CharField(required=False, allow_blank=True, default="")
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class PublicCustomerSerializer(serializers.ModelSerializer):
    """What an anonymous caller gets back from find-or-create."""

    class Meta:
        model = Customer
        fields = ["id", "name"]


class PortalAppointmentSerializer(serializers.ModelSerializer):
    """Customer-portal view of an appointment (no internal notes)."""
    services = AppointmentServiceSerializer(many=True, read_only=True)
    staff_name = serializers.CharField(source="staff.name", read_only=True, default=None)

    class Meta:
        model = Appointment
        fields = [
            "id", "appointment_date", "start_time", "end_time", "status",
            "total_duration_minutes", "total_price", "staff_name", "customer_notes",
            "cancellation_reason", "services",
        ]
        read_only_fields = fields
