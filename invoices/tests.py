from datetime import date, time
from decimal import Decimal

from django.contrib.auth.models import User
from django.core import mail
from django.core.mail.backends.base import BaseEmailBackend
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from booking.exceptions import InvalidInputError
from booking.models import Appointment, AppointmentService
from booking.services.invoice_service import InvoiceService, compute_totals, next_invoice_number
from booking.tests.helpers import make_customer, make_service
from configmgr.models import SystemSetting

from .models import Invoice, InvoiceItem, Product

DAY = date(2099, 6, 1)


class BrokenEmailBackend(BaseEmailBackend):
    def send_messages(self, email_messages):
        raise ConnectionRefusedError("smtp down")


def completed_appointment(customer, service, status=Appointment.COMPLETED):
    appointment = Appointment.objects.create(
        customer=customer, staff=None, appointment_date=DAY,
        start_time=time(10, 0), end_time=time(10, 30), status=status,
        total_duration_minutes=30, total_price=service.price,
    )
    AppointmentService.objects.create(
        appointment=appointment, service=service, service_name=service.name,
        duration_minutes=30, price=service.price,
    )
    return appointment


class InvoiceMathTests(TestCase):
    def test_totals_round_half_up_to_cents(self):
        self.assertEqual(
            compute_totals([(1, "59.99"), (2, "24.50")], "13"),
            (Decimal("108.99"), Decimal("14.17"), Decimal("123.16")),
        )
        self.assertEqual(
            compute_totals([(1, "0.05")], "50"),
            (Decimal("0.05"), Decimal("0.03"), Decimal("0.08")),
        )

    def test_empty_and_zero_rate(self):
        self.assertEqual(compute_totals([], "13"), (Decimal("0.00"), Decimal("0.00"), Decimal("0.00")))
        self.assertEqual(compute_totals([(3, "10")], "0")[2], Decimal("30.00"))


class InvoiceServiceTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.oil = make_service("Oil Change", price="59.99")
        self.wipers = Product.objects.create(name="Wiper Blades", price=Decimal("24.50"))
        self.service = InvoiceService()

    def test_create_with_catalog_and_custom_items(self):
        invoice = self.service.create_invoice(self.customer, [
            {"item_type": "service", "item_id": self.oil.id},
            {"item_type": "product", "item_id": self.wipers.id, "quantity": 2},
            {"item_type": "product", "item_name": "Shop supplies", "unit_price": "5.00"},
        ])

        self.assertEqual(invoice.invoice_number, "INV-00001")
        self.assertEqual(invoice.tax_rate, Decimal("13.00"))
        self.assertEqual(invoice.subtotal, Decimal("113.99"))
        self.assertEqual(invoice.tax_amount, Decimal("14.82"))
        self.assertEqual(invoice.total, Decimal("128.81"))
        self.assertEqual(invoice.status, Invoice.UNPAID)

        names = list(invoice.items.values_list("item_name", "quantity", "total_price"))
        self.assertEqual(names, [
            ("Oil Change", 1, Decimal("59.99")),
            ("Wiper Blades", 2, Decimal("49.00")),
            ("Shop supplies", 1, Decimal("5.00")),
        ])

    def test_numbers_increase(self):
        first = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])
        second = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])
        self.assertEqual((first.invoice_number, second.invoice_number), ("INV-00001", "INV-00002"))
        self.assertEqual(next_invoice_number(), "INV-00003")

    def test_tax_rate_comes_from_system_setting(self):
        SystemSetting.objects.create(key="INVOICE_TAX_RATE", value="5")
        invoice = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])
        self.assertEqual(invoice.tax_amount, Decimal("3.00"))

    def test_bad_input_is_rejected(self):
        bad_items = [
            [],
            [{"item_type": "labour", "item_name": "X", "unit_price": "1"}],
            [{"item_type": "product", "item_name": "No price"}],
            [{"item_type": "product", "item_id": 9999}],
            [{"item_type": "product", "item_id": self.wipers.id, "quantity": 0}],
            [{"item_type": "product", "item_id": self.wipers.id, "unit_price": "-1"}],
        ]
        for items in bad_items:
            with self.subTest(items=items), self.assertRaises(InvalidInputError):
                self.service.create_invoice(self.customer, items)
        with self.assertRaises(InvalidInputError):
            self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}],
                                        tax_rate="101")
        self.assertFalse(Invoice.objects.exists())

    def test_update_replaces_items_and_recomputes(self):
        invoice = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])
        self.service.update_invoice(invoice, items=[
            {"item_type": "product", "item_id": self.wipers.id, "quantity": 4},
        ], tax_rate="0")

        invoice.refresh_from_db()
        self.assertEqual(invoice.items.count(), 1)
        self.assertEqual(invoice.total, Decimal("98.00"))

    def test_invoice_from_completed_appointment(self):
        appointment = completed_appointment(self.customer, self.oil)
        invoice = self.service.create_from_appointment(appointment)

        self.assertEqual(invoice.appointment, appointment)
        self.assertEqual(invoice.customer, self.customer)
        item = invoice.items.get()
        self.assertEqual((item.item_type, item.service, item.unit_price),
                         (InvoiceItem.SERVICE, self.oil, Decimal("59.99")))

        with self.assertRaises(InvalidInputError):
            self.service.create_from_appointment(appointment)

    def test_only_completed_appointments_with_customer_are_invoiced(self):
        with self.assertRaises(InvalidInputError):
            self.service.create_from_appointment(
                completed_appointment(self.customer, self.oil, status=Appointment.CONFIRMED))
        with self.assertRaises(InvalidInputError):
            self.service.create_from_appointment(completed_appointment(None, self.oil))

    def test_paid_status_round_trip(self):
        invoice = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])
        self.service.mark_paid(invoice)
        self.assertEqual(invoice.status, Invoice.PAID)
        self.assertIsNotNone(invoice.paid_at)

        self.service.mark_unpaid(invoice)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, Invoice.UNPAID)
        self.assertIsNone(invoice.paid_at)

    def test_send_email(self):
        invoice = self.service.create_invoice(self.customer, [{"item_type": "service", "item_id": self.oil.id}])

        self.assertTrue(self.service.send_invoice_email(invoice))
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["jane@example.com"])
        self.assertIn("INV-00001", mail.outbox[0].subject)
        self.assertIn("Total: $67.79", mail.outbox[0].body)
        self.assertIsNotNone(invoice.emailed_at)

        self.service.send_invoice_email(invoice, override_email="fleet@example.com")
        self.assertEqual(mail.outbox[1].to, ["fleet@example.com"])

    def test_send_without_address_is_rejected(self):
        customer = make_customer(name="No Email", phone="416-555-0111", email="")
        invoice = self.service.create_invoice(customer, [{"item_type": "service", "item_id": self.oil.id}])
        with self.assertRaises(InvalidInputError):
            self.service.send_invoice_email(invoice)


class InvoiceApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username="boss", password="x", is_staff=True)
        self.customer = make_customer()
        self.oil = make_service("Oil Change", price="59.99")

    def staff_client(self):
        self.client.force_authenticate(self.admin)
        return self.client

    def create(self, **extra):
        return self.staff_client().post("/api/invoices/", {
            "customer": self.customer.id,
            "items": [{"item_type": "service", "item_id": self.oil.id}],
            **extra,
        }, format="json")

    def test_invoices_are_staff_only(self):
        self.assertEqual(self.client.get("/api/invoices/").status_code, 403)
        resp = self.client.post("/api/invoices/", {"customer": self.customer.id, "items": []}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_create_computes_totals_server_side(self):
        resp = self.create(tax_rate="10", total="1.00")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["invoice_number"], "INV-00001")
        self.assertEqual(resp.data["total"], "65.99")
        self.assertEqual(resp.data["customer_name"], "Jane Driver")
        self.assertEqual(len(resp.data["items"]), 1)

        resp = self.staff_client().post("/api/invoices/", {"customer": self.customer.id, "items": []},
                                        format="json")
        self.assertEqual(resp.status_code, 400)

    def test_update_and_filters(self):
        invoice_id = self.create().data["id"]
        resp = self.client.patch(f"/api/invoices/{invoice_id}/", {
            "items": [{"item_type": "product", "item_name": "Cabin filter", "unit_price": "30.00", "quantity": 2}],
            "tax_rate": "0",
        }, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["total"], "60.00")

        self.client.post(f"/api/invoices/{invoice_id}/mark-paid/")
        self.assertEqual(len(self.client.get("/api/invoices/", {"status": "paid"}).data), 1)
        self.assertEqual(len(self.client.get("/api/invoices/", {"status": "unpaid"}).data), 0)

        resp = self.client.post(f"/api/invoices/{invoice_id}/mark-unpaid/")
        self.assertEqual(resp.data["status"], "unpaid")

    def test_send_endpoint(self):
        invoice_id = self.create().data["id"]
        resp = self.client.post(f"/api/invoices/{invoice_id}/send/", {"email": "fleet@example.com"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(mail.outbox[0].to, ["fleet@example.com"])

    @override_settings(EMAIL_BACKEND="invoices.tests.BrokenEmailBackend")
    def test_send_failure_is_bad_gateway(self):
        invoice_id = self.create().data["id"]
        with self.assertLogs("booking.services.invoice_service", level="ERROR"):
            resp = self.client.post(f"/api/invoices/{invoice_id}/send/", {}, format="json")
        self.assertEqual(resp.status_code, 502)
        self.assertIsNone(Invoice.objects.get(pk=invoice_id).emailed_at)

    def test_invoice_appointment_action(self):
        appointment = completed_appointment(self.customer, self.oil)
        url = f"/api/appointments/{appointment.id}/invoice/"

        self.assertEqual(self.client.post(url).status_code, 403)

        resp = self.staff_client().post(url)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["appointment"], appointment.id)
        self.assertEqual(resp.data["subtotal"], "59.99")

        self.assertEqual(self.client.post(url).status_code, 400)

    def test_public_product_list_shows_active_only(self):
        Product.objects.create(name="Wiper Blades", price=Decimal("24.50"))
        Product.objects.create(name="Old Stock", price=Decimal("1.00"), active=False)

        names = [p["name"] for p in self.client.get("/api/products/").data]
        self.assertEqual(names, ["Wiper Blades"])
        self.assertEqual(self.client.post("/api/products/", {"name": "X", "price": "1"}).status_code, 403)

        self.assertEqual(len(self.staff_client().get("/api/products/").data), 2)
