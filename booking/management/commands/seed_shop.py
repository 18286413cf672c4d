"""
seed_shop.py
------------
Seeds (creates or updates) the auto-shop service catalog and its online
booking settings, and gives every active technician without a schedule the
default working week. Safe to run any time; services upsert by name.

Usage:
    python manage.py seed_shop
"""

from decimal import Decimal
from django.core.management.base import BaseCommand
from booking.models import Service, ServiceSetting, Staff
from staff.schedules import ensure_default_week


CATALOG = [
    # Maintenance
    {"name": "Oil Change - Conventional", "category": "Maintenance", "duration_minutes": 30,  "price": Decimal("59.99")},
    {"name": "Oil Change - Synthetic",    "category": "Maintenance", "duration_minutes": 30,  "price": Decimal("89.99")},
    {"name": "Tire Rotation",             "category": "Maintenance", "duration_minutes": 30,  "price": Decimal("39.99")},
    {"name": "Tire Swap (Seasonal)",      "category": "Tires",       "duration_minutes": 60,  "price": Decimal("79.99")},

    # Repairs
    {"name": "Brake Pads - Front",        "category": "Brakes",      "duration_minutes": 90,  "price": Decimal("249.99")},
    {"name": "Brake Pads & Rotors",       "category": "Brakes",      "duration_minutes": 120, "price": Decimal("449.99")},
    {"name": "Battery Replacement",       "category": "Electrical",  "duration_minutes": 30,  "price": Decimal("189.99")},

    # Diagnostics
    {"name": "Check Engine Diagnostic",   "category": "Diagnostics", "duration_minutes": 60,  "price": Decimal("119.99")},
    {"name": "Pre-Purchase Inspection",   "category": "Diagnostics", "duration_minutes": 90,  "price": Decimal("149.99")},
]


class Command(BaseCommand):
    help = "Seed or update the service catalog and default staff schedules."

    def handle(self, *args, **options):
        created = 0
        updated = 0

        for item in CATALOG:
            svc, is_created = Service.objects.get_or_create(
                name=item["name"],
                defaults={
                    "category": item["category"],
                    "price": item["price"],
                    "active": True,
                },
            )
            if is_created:
                created += 1
            else:
                changed = False
                if svc.category != item["category"]:
                    svc.category = item["category"]; changed = True
                if svc.price != item["price"]:
                    svc.price = item["price"]; changed = True
                if not svc.active:
                    svc.active = True; changed = True
                if changed:
                    svc.save()
                    updated += 1

            setting, _ = ServiceSetting.objects.get_or_create(service=svc)
            if setting.duration_minutes != item["duration_minutes"] or not setting.is_bookable:
                setting.duration_minutes = item["duration_minutes"]
                setting.is_bookable = True
                setting.save()

        schedule_days = 0
        for staff in Staff.objects.filter(is_active=True):
            schedule_days += ensure_default_week(staff)

        self.stdout.write(self.style.SUCCESS(
            f"Seed complete. Created={created}, Updated={updated}, ScheduleDays={schedule_days}"
        ))
