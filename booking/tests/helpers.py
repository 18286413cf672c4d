# booking/tests/helpers.py
#
# Small builders shared by the booking test modules.

from datetime import time
from decimal import Decimal

from booking.models import Customer, Service, ServiceSetting, Staff
from booking.services.availability_engine import weekday_index
from staff.models import StaffSchedule


def make_staff(name="Alex Tech", email=None, phone="", is_active=True):
    return Staff.objects.create(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@shop.test",
        phone=phone,
        is_active=is_active,
    )


def make_schedule(staff, day, open_time=time(9, 0), close_time=time(18, 0), is_available=True):
    """Working hours for `staff` on the weekday of `day`."""
    return StaffSchedule.objects.create(
        staff=staff,
        day_of_week=weekday_index(day),
        start_time=open_time,
        end_time=close_time,
        is_available=is_available,
    )


def make_service(name="Oil Change", duration=30, price="59.99", bookable=True, active=True):
    service = Service.objects.create(name=name, price=Decimal(price), active=active)
    ServiceSetting.objects.create(service=service, duration_minutes=duration, is_bookable=bookable)
    return service


def make_customer(name="Jane Driver", phone="647-555-0101", email="jane@example.com"):
    return Customer.objects.create(name=name, phone=phone, email=email)
