import threading
from datetime import date, datetime

from django.db import connection
from django.test import TransactionTestCase

from booking.exceptions import SlotConflictError
from booking.models import Appointment
from booking.services.availability_engine import AvailabilityEngine
from booking.services.booking_manager import BookingManager

from .helpers import make_customer, make_schedule, make_service, make_staff

DAY = date(2030, 6, 3)
BEFORE = datetime(2030, 6, 1, 8, 0)


class HoldAfterCheckEngine(AvailabilityEngine):
    """Waits for the other booking thread after the slot check, widening the race."""

    def __init__(self, barrier):
        super().__init__(step_minutes=30, clock=lambda: BEFORE)
        self.barrier = barrier

    def is_slot_available(self, *args, **kwargs):
        free = super().is_slot_available(*args, **kwargs)
        try:
            self.barrier.wait()
        except threading.BrokenBarrierError:
            # The other thread is blocked waiting for the write lock.
            pass
        return free


class ConcurrentBookingTests(TransactionTestCase):
    def setUp(self):
        self.staff = make_staff()
        make_schedule(self.staff, DAY)
        self.customer = make_customer()
        self.oil = make_service("Oil Change", duration=30)

    def test_same_slot_from_two_threads_books_once(self):
        barrier = threading.Barrier(2, timeout=2)
        results = []

        def book():
            manager = BookingManager(engine=HoldAfterCheckEngine(barrier))
            try:
                manager.create_appointment(
                    customer=self.customer, staff=self.staff, appointment_date=DAY,
                    start_time="10:00", services=[self.oil], now=BEFORE,
                )
                results.append("created")
            except SlotConflictError:
                results.append("conflict")
            except Exception as exc:
                results.append(f"{type(exc).__name__}: {exc}")
            finally:
                connection.close()

        threads = [threading.Thread(target=book) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(results), ["conflict", "created"])
        self.assertEqual(Appointment.objects.filter(staff=self.staff).count(), 1)
