# booking/views.py
#
# Purpose:
# - CRUD APIs for Customers, Services (+ booking settings) and Staff.
# - Appointment API: public booking, availability, customer cancellation,
#   staff status changes.
# - Permissions:
#   * Service/Staff writes are staff-only.
#   * Booking creation and availability require NO login. Public flow:
#     find-or-create customer -> availability -> create appointment.
#   * Customer lookup by phone is public and returns no internal notes.
#
# Error mapping:
# - InvalidInputError, InvalidTransitionError, CancellationNotAllowedError -> 400
# - SlotConflictError -> 409 (the customer must pick another time)
#
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.response import Response

from .exceptions import BookingError, InvalidInputError, SlotConflictError
from .models import Appointment, Customer, Service, Staff
from .phone_utils import normalize_phone
from .serializers import (
    AppointmentCreateSerializer,
    AppointmentSerializer,
    CustomerCancelSerializer,
    CustomerSerializer,
    PortalAppointmentSerializer,
    PublicCustomerSerializer,
    ServiceSerializer,
    StaffSerializer,
    StatusChangeSerializer,
)
from .services.availability_engine import AvailabilityEngine
from .services.booking_manager import BookingManager, total_duration_for
from .services.invoice_service import InvoiceService
from .services.slot_utils import parse_shop_date


# -------------------- Permissions --------------------
class IsStaffOrReadOnly(BasePermission):
    """
    Read: anyone
    Write: staff only
    """
    def has_permission(self, request, view):
        if request.method in ("GET", "HEAD", "OPTIONS"):
            return True
        return bool(request.user and request.user.is_staff)


class IsStaffOnly(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_staff)


def _is_staff(request) -> bool:
    user = getattr(request, "user", None)
    return bool(user and user.is_authenticated and user.is_staff)


def _error(exc: BookingError):
    code = status.HTTP_409_CONFLICT if isinstance(exc, SlotConflictError) else status.HTTP_400_BAD_REQUEST
    return Response({"detail": str(exc)}, status=code)


def _date_part(raw: str) -> str:
    """Accept 'YYYY-MM-DD', 'YYYY-MM-DDTHH:MM...' or 'YYYY-MM-DD HH:MM' and keep the date."""
    if "T" in raw:
        return raw.split("T", 1)[0].strip()
    if " " in raw:
        return raw.split(" ", 1)[0].strip()
    return raw


# -------------------- ViewSets --------------------
class CustomerViewSet(viewsets.ModelViewSet):
    """
    Customers. Creating is public (booking flow) and works as
    find-or-create by normalized phone; everything else is staff-only.
    Anonymous callers only get {id, name} back.
    """
    queryset = Customer.objects.all().order_by("name")
    serializer_class = CustomerSerializer

    # Contact/vehicle fields an anonymous caller may fill in when still blank.
    FILLABLE_FIELDS = ("email", "vehicle_make", "vehicle_model", "vehicle_year", "vehicle_plate", "vin")

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsStaffOnly()]

    def _respond(self, request, customer, code):
        out = CustomerSerializer(customer) if _is_staff(request) else PublicCustomerSerializer(customer)
        return Response(out.data, status=code)

    def create(self, request, *args, **kwargs):
        """
        - If a customer with the same phone exists, return it (200 OK).
          Staff may update its details in the same call; anonymous callers
          can only fill fields that are still blank.
        - Otherwise create a new one (201 Created).
        """
        phone = normalize_phone((request.data.get("phone") or "").strip())
        name = (request.data.get("name") or "").strip()
        if not name or not phone:
            return Response({"detail": "name and phone are required."}, status=400)

        existing = Customer.objects.filter(phone=phone).first()
        if existing:
            return self._update_existing(request, existing)

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            with transaction.atomic():
                customer = serializer.save()
        except IntegrityError:
            # Another request created the same phone in between.
            existing = Customer.objects.filter(phone=phone).first()
            if existing is None:
                raise
            return self._update_existing(request, existing)
        return self._respond(request, customer, status.HTTP_201_CREATED)

    def _update_existing(self, request, customer):
        if _is_staff(request):
            serializer = self.get_serializer(customer, data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            serializer.save()
            return self._respond(request, customer, status.HTTP_200_OK)

        blanks = {f: request.data[f] for f in self.FILLABLE_FIELDS
                  if request.data.get(f) and not getattr(customer, f)}
        if blanks:
            serializer = self.get_serializer(customer, data=blanks, partial=True)
            serializer.is_valid(raise_exception=True)
            serializer.save()
        return self._respond(request, customer, status.HTTP_200_OK)

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ProtectedError:
            return Response(
                {"detail": "This customer has invoices and cannot be deleted."},
                status=status.HTTP_400_BAD_REQUEST,
            )

class ServiceViewSet(viewsets.ModelViewSet):
    """
    Service catalog:
    - Anyone can list active services; ?bookable=1 keeps only those that
      can be booked online.
    - Only staff can create/update/delete services (IsStaffOrReadOnly).
    """
    serializer_class = ServiceSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        qs = Service.objects.all().select_related("setting").order_by("name")
        if not _is_staff(self.request):
            qs = qs.filter(active=True)
        if self.request.query_params.get("bookable") in ("1", "true"):
            qs = qs.filter(setting__is_bookable=True)
        return qs


class StaffViewSet(viewsets.ModelViewSet):
    """
    Technicians. Public sees active staff only. New staff get the default
    working week.
    """
    serializer_class = StaffSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        qs = Staff.objects.all().order_by("name")
        if not _is_staff(self.request):
            qs = qs.filter(is_active=True)
        return qs

    def perform_create(self, serializer):
        from staff.schedules import ensure_default_week

        staff = serializer.save()
        ensure_default_week(staff)


class AppointmentViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """
    Endpoints:
    - GET    /api/appointments/                   list (staff; ?date=&staff=&status=)
    - POST   /api/appointments/                   create a pending appointment (public)
    - GET    /api/appointments/availability/      free start times (public)
    - POST   /api/appointments/{id}/status/       staff status change
    - POST   /api/appointments/{id}/cancel/       cancellation (customer window enforced)
    - GET    /api/appointments/lookup/?phone=     a customer's own appointments (public)
    - POST   /api/appointments/{id}/invoice/      invoice a completed appointment (staff)
    """
    serializer_class = AppointmentSerializer
    manager = BookingManager()

    def get_permissions(self):
        if self.action in ("create", "availability", "cancel", "lookup"):
            return [AllowAny()]
        return [IsStaffOnly()]

    def get_queryset(self):
        qs = (
            Appointment.objects
            .select_related("customer", "staff")
            .prefetch_related("services")
            .order_by("appointment_date", "start_time")
        )
        params = self.request.query_params
        if params.get("date"):
            try:
                qs = qs.filter(appointment_date=parse_shop_date(_date_part(params["date"].strip())))
            except InvalidInputError:
                return qs.none()
        if params.get("staff", "").isdigit():
            qs = qs.filter(staff_id=int(params["staff"]))
        if params.get("status"):
            qs = qs.filter(status=params["status"].strip())
        return qs

    def create(self, request, *args, **kwargs):
        """
        Create a booking request. The slot is re-validated atomically by
        BookingManager; a lost race returns 409.
        """
        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            appointment = self.manager.create_appointment(
                customer=data["customer"],
                staff=data.get("staff"),
                appointment_date=data["appointment_date"],
                start_time=data["start_time"],
                services=data["services"],
                customer_notes=data.get("customer_notes", ""),
            )
        except BookingError as e:
            return _error(e)

        out = AppointmentSerializer(appointment)
        headers = self.get_success_headers(out.data)
        return Response(out.data, status=status.HTTP_201_CREATED, headers=headers)

    @action(detail=False, methods=["get"], url_path="availability")
    def availability(self, request):
        """
        GET /api/appointments/availability/?staff=ID&date=YYYY-MM-DD&services=1,2
        (or &duration=MINUTES instead of services)
        Returns available start times as 'HH:MM' strings.
        """
        staff_id = (request.query_params.get("staff") or "").strip()
        date_raw = (request.query_params.get("date") or "").strip()
        services_raw = (request.query_params.get("services") or "").strip()
        duration_raw = (request.query_params.get("duration") or "").strip()

        if not staff_id or not date_raw or not (services_raw or duration_raw):
            return Response(
                {"detail": "Missing 'staff', 'date', or 'services'/'duration'."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            if services_raw:
                duration = total_duration_for([s for s in services_raw.split(",") if s.strip()])
            else:
                try:
                    duration = int(duration_raw)
                except ValueError:
                    raise InvalidInputError("Duration must be a whole number of minutes.") from None
            slots = AvailabilityEngine().get_available_times(staff_id, _date_part(date_raw), duration)
        except BookingError as e:
            return _error(e)

        return Response({
            "date": _date_part(date_raw),
            "staff": staff_id,
            "duration_minutes": duration,
            "slots": slots,
        })

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        """
        Staff status change: {"status": "confirmed", "reason": "..."}.
        """
        appointment = get_object_or_404(Appointment, pk=pk)
        serializer = StatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        try:
            if new_status == Appointment.CANCELLED:
                self.manager.cancel_appointment(
                    appointment, by_customer=False, reason=serializer.validated_data["reason"]
                )
            else:
                self.manager.transition(appointment, new_status)
        except BookingError as e:
            return _error(e)
        return Response(AppointmentSerializer(appointment).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        """
        Cancel an appointment.
        - Staff users: no time restriction.
        - Customers: must send the phone on the booking and respect the
          cancellation window (default 24 hours).
        """
        appointment = get_object_or_404(Appointment.objects.select_related("customer"), pk=pk)
        serializer = CustomerCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reason = serializer.validated_data["reason"]

        by_customer = not _is_staff(request)
        if by_customer:
            phone = normalize_phone(serializer.validated_data["phone"])
            if not appointment.customer or not phone or appointment.customer.phone != phone:
                return Response(
                    {"detail": "Provided phone does not match this appointment."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            self.manager.cancel_appointment(appointment, by_customer=by_customer, reason=reason)
        except BookingError as e:
            return _error(e)
        return Response({"detail": "Appointment cancelled.", "appointment": AppointmentSerializer(appointment).data})

    @action(detail=False, methods=["get"], url_path="lookup")
    def lookup(self, request):
        """
        GET /api/appointments/lookup/?phone=...
        The customer's own appointments, newest first. Unknown phone -> [].
        """
        phone = normalize_phone((request.query_params.get("phone") or "").strip())
        if not phone:
            return Response({"detail": "Missing 'phone'."}, status=status.HTTP_400_BAD_REQUEST)

        customer = Customer.objects.filter(phone=phone).first()
        if customer is None:
            return Response([])
        qs = (
            Appointment.objects
            .filter(customer=customer)
            .select_related("staff")
            .prefetch_related("services")
            .order_by("-appointment_date", "-start_time")
        )
        return Response(PortalAppointmentSerializer(qs, many=True).data)

    @action(detail=True, methods=["post"])
    def invoice(self, request, pk=None):
        """Staff: create the invoice for a completed appointment."""
        from invoices.serializers import InvoiceSerializer

        appointment = get_object_or_404(Appointment.objects.select_related("customer"), pk=pk)
        try:
            invoice = InvoiceService().create_from_appointment(appointment)
        except BookingError as e:
            return _error(e)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)
