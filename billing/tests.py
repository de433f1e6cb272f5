import threading
from io import StringIO
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from unittest import mock

from django.contrib import admin
from django.core.management import call_command
from django.db import DatabaseError, connection, transaction
from django.test import (
    RequestFactory, SimpleTestCase, TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
)
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from tenants.models import Tenant
from .exceptions import (
    EmptyOrder, InvalidInput, InvalidQuantity, InvalidVoucher, ItemUnavailable,
    InvalidTable, OrderImmutable, PreconditionFailed
)
from .invoice_numbers import InvoiceNumberService
from .admin import OrderAdmin
from .models import InvoiceCounter, MenuItem, Order, OrderItem, RestaurantTable, Voucher
from .services import BillingService
from .vat import VatCalculationService


def current_period():
    return timezone.localtime().strftime('%Y%m')


@override_settings(VAT_ROUNDING='ROUND_DOWN')
class VatCalculationTests(SimpleTestCase):
    """Test VAT-exclusive and VAT-inclusive totals"""

    def setUp(self):
        self.service = VatCalculationService()

    def test_exclusive_simple_order(self):
        """Test exclusive mode adds VAT on top of the subtotal"""
        items = [
            {'price': '100.00', 'qty': 2},  # 200
            {'price': '50.00', 'qty': 3},   # 150
        ]

        result = self.service.compute_totals(items, Decimal('5.00'), False)

        self.assertEqual(result.subtotal, Decimal('350.00'))
        self.assertEqual(result.discount, Decimal('0.00'))
        self.assertEqual(result.net_amount, Decimal('350.00'))
        self.assertEqual(result.vat_rate, Decimal('5.00'))
        self.assertEqual(result.vat_amount, Decimal('17.50'))
        self.assertEqual(result.grand_total, Decimal('367.50'))

    def test_exclusive_with_discount(self):
        """Test VAT is charged on the discounted amount"""
        items = [
            {'price': '200.00', 'qty': 1},
            {'price': '100.00', 'qty': 1},
        ]

        result = self.service.compute_totals(items, Decimal('5.00'), False, Decimal('50.00'))

        # subtotal=300, discount=50, net=250, vat=12.50, grand=262.50
        self.assertEqual(result.subtotal, Decimal('300.00'))
        self.assertEqual(result.discount, Decimal('50.00'))
        self.assertEqual(result.net_amount, Decimal('250.00'))
        self.assertEqual(result.vat_amount, Decimal('12.50'))
        self.assertEqual(result.grand_total, Decimal('262.50'))

    def test_exclusive_tenant_configuration(self):
        """Test calculate() reads the tenant's rate and mode"""
        tenant = Tenant(vat_registered=True, default_vat_rate=Decimal('5.00'), vat_inclusive=False)
        items = [
            {'price': Decimal('250.00'), 'qty': 2},
            {'price': Decimal('350.00'), 'qty': 1},
        ]

        result = self.service.calculate(items, tenant)

        self.assertEqual(result.subtotal, Decimal('850.00'))
        self.assertEqual(result.net_amount, Decimal('850.00'))
        self.assertEqual(result.vat_rate, Decimal('5.00'))
        self.assertEqual(result.vat_amount, Decimal('42.50'))
        self.assertEqual(result.grand_total, Decimal('892.50'))

    def test_inclusive_tenant_configuration(self):
        """Test inclusive mode extracts VAT and leaves the price paid unchanged"""
        tenant = Tenant(vat_registered=True, default_vat_rate=Decimal('5.00'), vat_inclusive=True)
        items = [
            {'price': Decimal('250.00'), 'qty': 2},
            {'price': Decimal('350.00'), 'qty': 1},
        ]

        result = self.service.calculate(items, tenant)

        # vat = 850 * 5 / 105 = 40.476..., net = 809.53, grand = 850
        self.assertEqual(result.subtotal, Decimal('850.00'))
        self.assertEqual(result.vat_amount, Decimal('40.47'))
        self.assertEqual(result.net_amount, Decimal('809.53'))
        self.assertEqual(result.grand_total, Decimal('850.00'))

    def test_inclusive_exact_extraction(self):
        """Test prices of 105 at 5% contain exactly 5 VAT each"""
        items = [{'price': '105.00', 'qty': 2}]

        result = self.service.compute_totals(items, Decimal('5.00'), True)

        self.assertEqual(result.subtotal, Decimal('210.00'))
        self.assertEqual(result.vat_amount, Decimal('10.00'))
        self.assertEqual(result.net_amount, Decimal('200.00'))
        self.assertEqual(result.grand_total, Decimal('210.00'))

    def test_inclusive_with_discount(self):
        """Test inclusive extraction runs on the discounted amount"""
        items = [{'price': '210.00', 'qty': 1}]

        result = self.service.compute_totals(items, Decimal('5.00'), True, Decimal('10.00'))

        # vat = 200 * 5 / 105 = 9.52, net = 190.48, grand = 200
        self.assertEqual(result.subtotal, Decimal('210.00'))
        self.assertEqual(result.discount, Decimal('10.00'))
        self.assertEqual(result.vat_amount, Decimal('9.52'))
        self.assertEqual(result.net_amount, Decimal('190.48'))
        self.assertEqual(result.grand_total, Decimal('200.00'))

    def test_full_discount_yields_zero(self):
        """Test a discount equal to the subtotal zeroes everything in both modes"""
        items = [{'price': '100.00', 'qty': 1}]

        for inclusive in (False, True):
            result = self.service.compute_totals(items, Decimal('5.00'), inclusive, Decimal('100.00'))
            self.assertEqual(result.net_amount, Decimal('0.00'))
            self.assertEqual(result.vat_amount, Decimal('0.00'))
            self.assertEqual(result.grand_total, Decimal('0.00'))

    def test_grand_total_is_net_plus_vat(self):
        """Test grand_total = net_amount + vat_amount regardless of mode"""
        items = [{'price': '33.33', 'qty': 3}, {'price': '19.99', 'qty': 7}]

        for inclusive in (False, True):
            result = self.service.compute_totals(items, Decimal('15.00'), inclusive, Decimal('12.34'))
            self.assertEqual(result.grand_total, result.net_amount + result.vat_amount)

    def test_not_vat_registered(self):
        """Test tenants that are not VAT registered charge no VAT"""
        tenant = Tenant(vat_registered=False, default_vat_rate=Decimal('5.00'), vat_inclusive=False)
        items = [{'price': '500.00', 'qty': 1}]

        result = self.service.calculate(items, tenant, Decimal('20.00'))

        self.assertEqual(result.vat_rate, Decimal('0.00'))
        self.assertEqual(result.vat_amount, Decimal('0.00'))
        self.assertEqual(result.net_amount, Decimal('480.00'))
        self.assertEqual(result.grand_total, Decimal('480.00'))

    def test_zero_vat_rate(self):
        """Test a zero rate adds no VAT"""
        result = self.service.compute_totals([{'price': '500.00', 'qty': 1}], Decimal('0.00'), False)

        self.assertEqual(result.vat_amount, Decimal('0.00'))
        self.assertEqual(result.grand_total, Decimal('500.00'))

    def test_vat_rounds_down_to_the_cent(self):
        """Test default rounding truncates partial cents"""
        result = self.service.compute_totals([{'price': '55.50', 'qty': 1}], Decimal('5.00'), False)

        # vat = 2.775 -> 2.77
        self.assertEqual(result.vat_amount, Decimal('2.77'))
        self.assertEqual(result.grand_total, Decimal('58.27'))

    def test_configurable_half_up_rounding(self):
        """Test VAT_ROUNDING can switch to half-up rounding"""
        service = VatCalculationService(rounding=ROUND_HALF_UP)

        result = service.compute_totals([{'price': '55.50', 'qty': 1}], Decimal('5.00'), False)

        self.assertEqual(result.vat_amount, Decimal('2.78'))
        self.assertEqual(result.grand_total, Decimal('58.28'))

    def test_large_amounts_stay_precise(self):
        """Test large orders do not drift"""
        result = self.service.compute_totals([{'price': '99999.99', 'qty': 100}], Decimal('5.00'), False)

        self.assertEqual(result.subtotal, Decimal('9999999.00'))
        self.assertEqual(result.vat_amount, Decimal('499999.95'))
        self.assertEqual(result.grand_total, Decimal('10499998.95'))

    def test_float_prices_do_not_drift(self):
        """Test float inputs are converted through their decimal text"""
        result = self.service.compute_totals([{'price': 0.1, 'qty': 3}], 7.5, False)

        self.assertEqual(result.subtotal, Decimal('0.30'))
        self.assertEqual(result.vat_rate, Decimal('7.50'))

    def test_fractional_vat_rate(self):
        """Test fractional VAT rates"""
        result = self.service.compute_totals([{'price': '100.00', 'qty': 1}], Decimal('7.50'), False)

        self.assertEqual(result.vat_amount, Decimal('7.50'))
        self.assertEqual(result.grand_total, Decimal('107.50'))

    def test_empty_items_yield_zero_totals(self):
        """Test no items means zero totals"""
        result = self.service.compute_totals([], Decimal('5.00'), False)

        self.assertEqual(result.subtotal, Decimal('0.00'))
        self.assertEqual(result.vat_amount, Decimal('0.00'))
        self.assertEqual(result.grand_total, Decimal('0.00'))

    def test_as_dict_matches_order_fields(self):
        """Test as_dict() keys line up with the order's money columns"""
        result = self.service.compute_totals([{'price': '10.00', 'qty': 1}], Decimal('5.00'), False)

        self.assertEqual(
            set(result.as_dict()),
            {'subtotal', 'discount', 'net_amount', 'vat_rate', 'vat_amount', 'grand_total'}
        )

    def test_invalid_quantities_rejected(self):
        """Test quantities must be positive integers"""
        for qty in (0, -1, 1.5, None, True):
            with self.assertRaises(InvalidInput):
                self.service.compute_totals([{'price': '10.00', 'qty': qty}], Decimal('5.00'), False)

    def test_negative_price_rejected(self):
        """Test prices cannot be negative"""
        with self.assertRaises(InvalidInput):
            self.service.compute_totals([{'price': '-1.00', 'qty': 1}], Decimal('5.00'), False)

    def test_discount_exceeding_subtotal_rejected(self):
        """Test discount cannot exceed the subtotal"""
        with self.assertRaisesMessage(InvalidInput, 'Discount cannot exceed subtotal.'):
            self.service.compute_totals([{'price': '100.00', 'qty': 1}], Decimal('5.00'), False, Decimal('150.00'))

    def test_negative_discount_rejected(self):
        """Test discount cannot be negative"""
        with self.assertRaisesMessage(InvalidInput, 'Discount cannot be negative.'):
            self.service.compute_totals([{'price': '100.00', 'qty': 1}], Decimal('5.00'), False, Decimal('-10.00'))


class InvoiceNumberTests(TestCase):
    """Test invoice numbering inside transactions"""

    def setUp(self):
        self.service = InvoiceNumberService(reset_monthly=False)

    def test_sequential_numbers_within_transactions(self):
        """Test each transaction gets the next number"""
        invoice_numbers = []

        for _ in range(3):
            with transaction.atomic():
                invoice_numbers.append(self.service.generate(99))

        period = current_period()
        self.assertEqual(invoice_numbers, [
            f"INV-99-{period}-000001",
            f"INV-99-{period}-000002",
            f"INV-99-{period}-000003",
        ])

    def test_tenants_have_independent_counters(self):
        """Test every tenant starts its own sequence at 1"""
        with transaction.atomic():
            invoice_a = self.service.generate(100)
        with transaction.atomic():
            invoice_b = self.service.generate(101)

        period = current_period()
        self.assertEqual(invoice_a, f"INV-100-{period}-000001")
        self.assertEqual(invoice_b, f"INV-101-{period}-000001")

    def test_counter_persists_last_number(self):
        """Test the counter row is created lazily and keeps the last number"""
        self.assertFalse(InvoiceCounter.objects.filter(tenant_id=102).exists())

        with transaction.atomic():
            self.service.generate(102)
        with transaction.atomic():
            self.service.generate(102)

        counter = InvoiceCounter.objects.get(tenant_id=102)
        self.assertEqual(counter.last_invoice_number, 2)
        self.assertEqual(counter.period, current_period())

    def test_rolled_back_transaction_does_not_burn_a_number(self):
        """Test a rollback undoes the increment"""
        with transaction.atomic():
            self.service.generate(103)

        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                self.service.generate(103)
                raise RuntimeError('order failed')

        self.assertEqual(InvoiceCounter.objects.get(tenant_id=103).last_invoice_number, 1)
        with transaction.atomic():
            self.assertEqual(self.service.generate(103), f"INV-103-{current_period()}-000002")

    def test_period_comes_from_generation_time(self):
        """Test the YYYYMM segment is the month the number was minted"""
        july = timezone.make_aware(datetime(2025, 7, 15, 12, 0))

        with transaction.atomic():
            invoice_number = self.service.generate(7, now=july)

        self.assertEqual(invoice_number, 'INV-7-202507-000001')

    def test_sequence_runs_on_across_months_by_default(self):
        """Test the running counter does not restart in a new month"""
        july = timezone.make_aware(datetime(2025, 7, 31, 12, 0))
        august = timezone.make_aware(datetime(2025, 8, 1, 12, 0))

        with transaction.atomic():
            self.service.generate(8, now=july)
            self.service.generate(8, now=july)
        with transaction.atomic():
            invoice_number = self.service.generate(8, now=august)

        self.assertEqual(invoice_number, 'INV-8-202508-000003')

    def test_monthly_reset(self):
        """Test the sequence restarts at 1 in a new month when configured"""
        service = InvoiceNumberService(reset_monthly=True)
        july = timezone.make_aware(datetime(2025, 7, 31, 12, 0))
        august = timezone.make_aware(datetime(2025, 8, 1, 12, 0))

        with transaction.atomic():
            self.assertEqual(service.generate(9, now=july), 'INV-9-202507-000001')
            self.assertEqual(service.generate(9, now=july), 'INV-9-202507-000002')
        with transaction.atomic():
            self.assertEqual(service.generate(9, now=august), 'INV-9-202508-000001')

        self.assertEqual(InvoiceCounter.objects.filter(tenant_id=9).count(), 1)

    @override_settings(INVOICE_SEQUENCE_RESET_MONTHLY=True)
    def test_monthly_reset_from_settings(self):
        """Test the reset behaviour defaults to the setting"""
        self.assertTrue(InvoiceNumberService().reset_monthly)


class InvoiceNumberPreconditionTests(TransactionTestCase):
    """Test generate() refuses to run in autocommit mode"""

    def test_generate_outside_transaction_fails(self):
        with self.assertRaisesMessage(PreconditionFailed, 'must be called within a DB transaction'):
            InvoiceNumberService().generate(1)

        self.assertFalse(InvoiceCounter.objects.filter(tenant_id=1).exists())


@skipUnlessDBFeature('has_select_for_update')
class InvoiceNumberConcurrencyTests(TransactionTestCase):
    """
    Test concurrent transactions never share a number

    SQLite has no row locks, so this only runs against a backend such as PostgreSQL:
        pip install -e ".[test,postgres]"
        DB_ENGINE=django.db.backends.postgresql DB_NAME=dinesaas DB_USER=postgres \\
            DB_PASSWORD=postgres DB_HOST=localhost pytest billing/tests.py -k Concurrency
    """

    def test_concurrent_generation_never_repeats(self):
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                with transaction.atomic():
                    number = InvoiceNumberService(reset_monthly=False).generate(42)
                with lock:
                    results.append(number)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        sequences = sorted(int(number.rsplit('-', 1)[1]) for number in results)
        self.assertEqual(sequences, list(range(1, 9)))
        self.assertEqual(InvoiceCounter.objects.get(tenant_id=42).last_invoice_number, 8)


@override_settings(VAT_ROUNDING='ROUND_DOWN', INVOICE_SEQUENCE_RESET_MONTHLY=False, BILLING_MAX_ITEM_QTY=100)
class BillingServiceTests(TestCase):
    """Test order creation end to end"""

    def setUp(self):
        self.tenant = Tenant.objects.create(
            name='Test VAT Restaurant',
            slug='test-vat-restaurant',
            email='vat@test.com',
            phone='01700000000',
            address='123 Test Street, Dhaka',
            vat_registered=True,
            vat_number='BIN-123456789',
            default_vat_rate=Decimal('5.00'),
            vat_inclusive=False,
        )
        self.biriyani = MenuItem.objects.create(tenant=self.tenant, name='Biriyani', price=Decimal('250.00'))
        self.kacchi = MenuItem.objects.create(tenant=self.tenant, name='Kacchi', price=Decimal('350.00'))
        self.billing = BillingService()

    def order_data(self, items=None, **overrides):
        data = {
            'type': 'parcel',
            'customer_name': 'Test Customer',
            'customer_phone': '01712345678',
            'items': items if items is not None else [
                {'menu_item_id': self.biriyani.id, 'qty': 2},  # 500
                {'menu_item_id': self.kacchi.id, 'qty': 1},    # 350
            ],
            'payment_method': 'cash',
            'payment_status': 'pending',
        }
        data.update(overrides)
        return data

    def test_exclusive_totals(self):
        """Test an exclusive-VAT order stores the calculated totals"""
        order = self.billing.create_order(self.tenant, self.order_data(), source='pos')

        # subtotal = 850, discount = 0, net = 850, vat = 42.50, grand = 892.50
        self.assertEqual(order.subtotal, Decimal('850.00'))
        self.assertEqual(order.discount, Decimal('0.00'))
        self.assertEqual(order.net_amount, Decimal('850.00'))
        self.assertEqual(order.vat_rate, Decimal('5.00'))
        self.assertEqual(order.vat_amount, Decimal('42.50'))
        self.assertEqual(order.grand_total, Decimal('892.50'))
        self.assertTrue(order.invoice_number.startswith(f"INV-{self.tenant.id}-"))
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.source, 'pos')
        self.assertEqual(order.status, 'placed')

    def test_inclusive_totals(self):
        """Test an inclusive-VAT order charges the menu price"""
        self.tenant.vat_inclusive = True
        self.tenant.save()

        order = self.billing.create_order(self.tenant, self.order_data(payment_status='paid'), source='pos')

        self.assertEqual(order.subtotal, Decimal('850.00'))
        self.assertEqual(order.vat_amount, Decimal('40.47'))
        self.assertEqual(order.net_amount, Decimal('809.53'))
        self.assertEqual(order.grand_total, Decimal('850.00'))

    def test_order_items_freeze_price(self):
        """Test order lines keep the price they were sold at"""
        order = self.billing.create_order(self.tenant, self.order_data())

        self.biriyani.price = Decimal('300.00')
        self.biriyani.save()

        line = OrderItem.objects.get(order=order, menu_item=self.biriyani)
        self.assertEqual(line.price_at_sale, Decimal('250.00'))
        self.assertEqual(line.line_total, Decimal('500.00'))
        order.refresh_from_db()
        self.assertEqual(order.subtotal, Decimal('850.00'))

    def test_sequential_invoice_numbers(self):
        """Test consecutive orders get consecutive invoice numbers"""
        order1 = self.billing.create_order(self.tenant, self.order_data())
        order2 = self.billing.create_order(self.tenant, self.order_data())

        period = current_period()
        self.assertEqual(order1.invoice_number, f"INV-{self.tenant.id}-{period}-000001")
        self.assertEqual(order2.invoice_number, f"INV-{self.tenant.id}-{period}-000002")

    def test_order_numbers(self):
        """Test order numbers are scoped to tenant and day"""
        order1 = self.billing.create_order(self.tenant, self.order_data())
        order2 = self.billing.create_order(self.tenant, self.order_data())

        today = timezone.localdate().strftime('%Y%m%d')
        self.assertEqual(order1.order_number, f"ORD-{self.tenant.id}-{today}-0001")
        self.assertEqual(order2.order_number, f"ORD-{self.tenant.id}-{today}-0002")
        self.assertNotEqual(order1.order_number, order1.invoice_number)

    def test_order_number_after_deleted_order(self):
        """Test a removed order doesn't make the next number collide"""
        first = self.billing.create_order(self.tenant, self.order_data())
        second = self.billing.create_order(self.tenant, self.order_data())
        first.delete()

        third = self.billing.create_order(self.tenant, self.order_data())

        today = timezone.localdate().strftime('%Y%m%d')
        self.assertTrue(second.order_number.endswith('-0002'))
        self.assertEqual(third.order_number, f"ORD-{self.tenant.id}-{today}-0003")
        self.assertEqual(Order.objects.count(), 2)

    def test_vat_rate_is_stored_historically(self):
        """Test changing the tenant's rate leaves existing orders alone"""
        order = self.billing.create_order(self.tenant, self.order_data())

        self.tenant.default_vat_rate = Decimal('15.00')
        self.tenant.save()

        order.refresh_from_db()
        self.assertEqual(order.vat_rate, Decimal('5.00'))
        self.assertEqual(order.vat_amount, Decimal('42.50'))
        self.assertEqual(order.grand_total, Decimal('892.50'))

    def test_not_vat_registered_tenant(self):
        """Test unregistered tenants bill without VAT"""
        self.tenant.vat_registered = False
        self.tenant.save()

        order = self.billing.create_order(self.tenant, self.order_data())

        self.assertEqual(order.vat_rate, Decimal('0.00'))
        self.assertEqual(order.vat_amount, Decimal('0.00'))
        self.assertEqual(order.grand_total, Decimal('850.00'))

    def test_paid_orders_record_paid_at(self):
        """Test payment status drives paid_at"""
        paid = self.billing.create_order(self.tenant, self.order_data(payment_status='paid'))
        pending = self.billing.create_order(self.tenant, self.order_data())

        self.assertEqual(paid.payment_status, 'paid')
        self.assertIsNotNone(paid.paid_at)
        self.assertEqual(pending.payment_status, 'pending')
        self.assertIsNone(pending.paid_at)

    def test_dine_in_table_is_linked_and_occupied(self):
        """Test a dine-in order takes the tenant's table and marks it occupied"""
        table = RestaurantTable.objects.create(tenant=self.tenant, table_number='T4')

        order = self.billing.create_order(self.tenant, self.order_data(type='dine', table_id=table.id))

        self.assertEqual(order.table, table)
        table.refresh_from_db()
        self.assertEqual(table.status, 'occupied')

    def test_table_ignored_for_other_order_types(self):
        table = RestaurantTable.objects.create(tenant=self.tenant, table_number='T4')

        order = self.billing.create_order(self.tenant, self.order_data(table_id=table.id))

        self.assertIsNone(order.table)
        table.refresh_from_db()
        self.assertEqual(table.status, 'available')

    def test_unknown_table_fails_whole_order(self):
        """Test a table that doesn't exist rolls the order back"""
        with self.assertRaisesMessage(InvalidTable, 'Invalid table selected.'):
            self.billing.create_order(self.tenant, self.order_data(type='dine', table_id=987654))

        self.assertEqual(Order.objects.count(), 0)
        self.assertFalse(InvoiceCounter.objects.filter(tenant_id=self.tenant.id).exists())

    def test_other_tenants_table_rejected(self):
        other = Tenant.objects.create(name='Other', slug='other')
        foreign_table = RestaurantTable.objects.create(tenant=other, table_number='T1')

        with self.assertRaises(InvalidTable):
            self.billing.create_order(self.tenant, self.order_data(type='dine', table_id=foreign_table.id))

        foreign_table.refresh_from_db()
        self.assertEqual(foreign_table.status, 'available')
        self.assertEqual(Order.objects.count(), 0)

    def test_inactive_item_fails_whole_order(self):
        """Test an inactive item leaves nothing behind"""
        self.kacchi.is_active = False
        self.kacchi.save()

        with self.assertRaises(ItemUnavailable) as ctx:
            self.billing.create_order(self.tenant, self.order_data())

        self.assertEqual(ctx.exception.menu_item_id, self.kacchi.id)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.assertFalse(InvoiceCounter.objects.filter(tenant_id=self.tenant.id).exists())

    def test_other_tenants_item_unavailable(self):
        """Test menu items of another restaurant can't be ordered"""
        other = Tenant.objects.create(name='Other', slug='other')
        foreign_item = MenuItem.objects.create(tenant=other, name='Pizza', price=Decimal('900.00'))

        with self.assertRaises(ItemUnavailable):
            self.billing.create_order(self.tenant, self.order_data([{'menu_item_id': foreign_item.id, 'qty': 1}]))

    def test_unknown_item_unavailable(self):
        with self.assertRaisesMessage(ItemUnavailable, 'Menu item #999999 is unavailable.'):
            self.billing.create_order(self.tenant, self.order_data([{'menu_item_id': 999999, 'qty': 1}]))

    def test_empty_order_rejected(self):
        with self.assertRaises(EmptyOrder):
            self.billing.create_order(self.tenant, self.order_data([]))

    def test_quantity_bounds(self):
        """Test quantities below 1 or above the configured maximum are rejected"""
        for qty in (0, -2, 101):
            with self.assertRaises(InvalidQuantity):
                self.billing.create_order(self.tenant, self.order_data([{'menu_item_id': self.biriyani.id, 'qty': qty}]))

        with override_settings(BILLING_MAX_ITEM_QTY=5):
            with self.assertRaises(InvalidQuantity):
                self.billing.create_order(self.tenant, self.order_data([{'menu_item_id': self.biriyani.id, 'qty': 6}]))

        self.assertEqual(Order.objects.count(), 0)

    def test_percentage_voucher_discount(self):
        """Test a valid voucher discounts the order and counts its use"""
        voucher = Voucher.objects.create(
            tenant=self.tenant,
            code='SAVE10',
            type='percentage',
            discount_value=Decimal('10.00'),
            expiry_date=timezone.localdate() + timedelta(days=7),
        )

        order = self.billing.create_order(self.tenant, self.order_data(voucher_code='SAVE10'))

        # subtotal=850, discount=85, net=765, vat=38.25, grand=803.25
        self.assertEqual(order.discount, Decimal('85.00'))
        self.assertEqual(order.net_amount, Decimal('765.00'))
        self.assertEqual(order.vat_amount, Decimal('38.25'))
        self.assertEqual(order.grand_total, Decimal('803.25'))
        self.assertEqual(order.voucher, voucher)
        voucher.refresh_from_db()
        self.assertEqual(voucher.used_count, 1)

    def test_fixed_voucher_capped_at_subtotal(self):
        """Test a fixed voucher never discounts more than the subtotal"""
        Voucher.objects.create(
            tenant=self.tenant,
            code='BIG',
            type='fixed',
            discount_value=Decimal('1000.00'),
            expiry_date=timezone.localdate(),
        )

        order = self.billing.create_order(
            self.tenant, self.order_data([{'menu_item_id': self.biriyani.id, 'qty': 1}], voucher_code='BIG')
        )

        self.assertEqual(order.discount, Decimal('250.00'))
        self.assertEqual(order.grand_total, Decimal('0.00'))

    def test_invalid_voucher_rolls_back_everything(self):
        """Test a rejected voucher leaves no order, items or counter increment"""
        self.billing.create_order(self.tenant, self.order_data())
        counter_before = InvoiceCounter.objects.get(tenant_id=self.tenant.id).last_invoice_number

        with self.assertRaises(InvalidVoucher):
            self.billing.create_order(self.tenant, self.order_data(voucher_code='NOPE'))

        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(OrderItem.objects.count(), 2)
        self.assertEqual(InvoiceCounter.objects.get(tenant_id=self.tenant.id).last_invoice_number, counter_before)

    def test_expired_and_exhausted_vouchers_rejected(self):
        Voucher.objects.create(
            tenant=self.tenant, code='OLD', discount_value=Decimal('10.00'),
            expiry_date=timezone.localdate() - timedelta(days=1),
        )
        Voucher.objects.create(
            tenant=self.tenant, code='USED', discount_value=Decimal('10.00'),
            expiry_date=timezone.localdate() + timedelta(days=1), max_uses=1, used_count=1,
        )
        Voucher.objects.create(
            tenant=self.tenant, code='OFF', discount_value=Decimal('10.00'),
            expiry_date=timezone.localdate() + timedelta(days=1), is_active=False,
        )

        for code in ('OLD', 'USED', 'OFF'):
            with self.assertRaises(InvalidVoucher):
                self.billing.create_order(self.tenant, self.order_data(voucher_code=code))

        self.assertEqual(Order.objects.count(), 0)

    def test_failure_after_numbering_rolls_back_counter(self):
        """Test a failure after the invoice number is minted gives the number back"""
        voucher = Voucher.objects.create(
            tenant=self.tenant, code='SAVE10', type='percentage', discount_value=Decimal('10.00'),
            expiry_date=timezone.localdate() + timedelta(days=7),
        )
        self.billing.create_order(self.tenant, self.order_data())

        with mock.patch.object(Order, 'next_order_number', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                self.billing.create_order(self.tenant, self.order_data(voucher_code='SAVE10'))

        self.assertEqual(InvoiceCounter.objects.get(tenant_id=self.tenant.id).last_invoice_number, 1)
        self.assertEqual(Order.objects.count(), 1)
        voucher.refresh_from_db()
        self.assertEqual(voucher.used_count, 0)

        order = self.billing.create_order(self.tenant, self.order_data())
        self.assertTrue(order.invoice_number.endswith('-000002'))

    def test_billed_totals_are_immutable(self):
        """Test frozen fields can't be edited but status can"""
        order = self.billing.create_order(self.tenant, self.order_data())

        order.grand_total = Decimal('1.00')
        with self.assertRaises(OrderImmutable):
            order.save()

        order.refresh_from_db()
        order.cancel()
        order.refresh_from_db()
        self.assertEqual(order.status, 'cancelled')
        self.assertEqual(order.grand_total, Decimal('892.50'))

    def test_status_flow(self):
        order = self.billing.create_order(self.tenant, self.order_data())

        self.assertTrue(order.advance_status())
        self.assertEqual(order.status, 'confirmed')

        order.cancel()
        self.assertFalse(order.advance_status())


class BillingAPITests(APITestCase):
    """Test order and invoice API endpoints"""

    def setUp(self):
        self.tenant = Tenant.objects.create(
            name='API Restaurant',
            slug='api-restaurant',
            address='1 Road, Dhaka',
            vat_registered=True,
            vat_number='BIN-API-001',
            default_vat_rate=Decimal('5.00'),
        )
        self.menu_item = MenuItem.objects.create(tenant=self.tenant, name='Biriyani', price=Decimal('250.00'))
        # Add API key to all requests
        self.client.defaults['HTTP_X_API_KEY'] = self.tenant.api_key

    def pos_payload(self, **overrides):
        data = {
            'type': 'parcel',
            'customer_name': 'API Customer',
            'customer_phone': '01700000000',
            'items': [{'menu_item_id': self.menu_item.id, 'qty': 1}],
            'payment_method': 'cash',
            'payment_status': 'paid',
        }
        data.update(overrides)
        return data

    def test_pos_order_returns_vat_invoice_fields(self):
        """Test creating a POS order"""
        response = self.client.post(reverse('pos_create_order'), self.pos_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        for field in ('invoice_number', 'subtotal', 'discount', 'net_amount', 'vat_rate', 'vat_amount', 'grand_total'):
            self.assertIn(field, response.data)
        self.assertIsNotNone(response.data['invoice_number'])
        self.assertEqual(response.data['vat_rate'], '5.00')
        self.assertEqual(response.data['grand_total'], '262.50')
        self.assertEqual(response.data['source'], 'pos')
        self.assertEqual(len(response.data['items']), 1)

    def test_pos_order_requires_api_key(self):
        del self.client.defaults['HTTP_X_API_KEY']

        response = self.client.post(reverse('pos_create_order'), self.pos_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Order.objects.count(), 0)

    def test_pos_order_rejects_invalid_api_key(self):
        self.client.defaults['HTTP_X_API_KEY'] = 'not-a-key'

        response = self.client.post(reverse('pos_create_order'), self.pos_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_pos_order_unavailable_item(self):
        """Test business errors come back as 422"""
        self.menu_item.is_active = False
        self.menu_item.save()

        response = self.client.post(reverse('pos_create_order'), self.pos_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['code'], 'item_unavailable')
        self.assertIn('error', response.data)

    def test_pos_order_invalid_voucher(self):
        response = self.client.post(reverse('pos_create_order'), self.pos_payload(voucher_code='NOPE'), format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['code'], 'invalid_voucher')

    def test_pos_order_invalid_table(self):
        """Test an unknown dine-in table comes back as 422"""
        response = self.client.post(
            reverse('pos_create_order'), self.pos_payload(type='dine', table_id=987654), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['code'], 'invalid_table')
        self.assertEqual(response.data['error'], 'Invalid table selected.')

    def test_pos_parcel_requires_customer_name(self):
        response = self.client.post(reverse('pos_create_order'), self.pos_payload(customer_name=''), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('customer_name', response.data)

    def test_pos_order_requires_items(self):
        response = self.client.post(reverse('pos_create_order'), self.pos_payload(items=[]), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_customer_order(self):
        """Test public QR ordering by restaurant slug"""
        url = reverse('customer_create_order', kwargs={'slug': self.tenant.slug})
        data = self.pos_payload(payment_method='pay_later')
        del data['payment_status']
        del self.client.defaults['HTTP_X_API_KEY']

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['source'], 'customer')
        self.assertEqual(response.data['payment_status'], 'pending')
        self.assertEqual(response.data['subtotal'], '250.00')

    def test_customer_order_unknown_restaurant(self):
        url = reverse('customer_create_order', kwargs={'slug': 'nowhere'})

        response = self.client.post(url, self.pos_payload(payment_method='cash'), format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invoice_endpoint_returns_stored_values(self):
        """Test the invoice shows what was billed, even after a rate change"""
        order = BillingService().create_order(
            self.tenant,
            {
                'type': 'parcel', 'customer_name': 'Invoice Test', 'customer_phone': '017',
                'items': [{'menu_item_id': self.menu_item.id, 'qty': 2}],
                'payment_method': 'cash', 'payment_status': 'pending',
            },
        )
        self.tenant.default_vat_rate = Decimal('15.00')
        self.tenant.save()

        url = reverse('order_invoice', kwargs={'order_number': order.order_number})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invoice']['invoice_number'], order.invoice_number)
        self.assertEqual(response.data['invoice']['order_number'], order.order_number)
        self.assertEqual(response.data['restaurant']['vat_number'], 'BIN-API-001')
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['price_at_sale'], '250.00')
        self.assertEqual(response.data['totals']['vat_rate'], '5.00')
        self.assertEqual(response.data['totals']['vat_amount'], '25.00')
        self.assertEqual(response.data['totals']['grand_total'], '525.00')
        self.assertEqual(response.data['payment'], {'method': 'cash', 'status': 'pending'})

    def test_invoice_unknown_order(self):
        url = reverse('order_invoice', kwargs={'order_number': 'ORD-0-00000000-0000'})

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')


class SeedMenuCommandTests(TestCase):
    """Test the seed_menu management command"""

    def test_seed_creates_tenant_menu_and_voucher(self):
        out = StringIO()
        call_command('seed_menu', '--tenant', 'seed-test', stdout=out)

        tenant = Tenant.objects.get(slug='seed-test')
        self.assertTrue(tenant.vat_registered)
        self.assertEqual(tenant.default_vat_rate, Decimal('5.00'))
        self.assertEqual(MenuItem.objects.filter(tenant=tenant, is_active=True).count(), 7)
        self.assertTrue(Voucher.objects.filter(tenant=tenant, code='WELCOME10').exists())
        self.assertEqual(RestaurantTable.objects.filter(tenant=tenant).count(), 4)
        self.assertIn(tenant.api_key, out.getvalue())

    def test_reseed_is_idempotent(self):
        call_command('seed_menu', '--tenant', 'seed-test', stdout=StringIO())
        call_command('seed_menu', '--tenant', 'seed-test', stdout=StringIO())

        self.assertEqual(MenuItem.objects.filter(tenant__slug='seed-test').count(), 7)

    def test_clear_keeps_sold_items(self):
        """Test --clear can't delete items referenced by orders"""
        call_command('seed_menu', '--tenant', 'seed-test', stdout=StringIO())
        tenant = Tenant.objects.get(slug='seed-test')
        sold = MenuItem.objects.get(tenant=tenant, name='Biriyani')
        BillingService().create_order(tenant, {
            'type': 'quick',
            'items': [{'menu_item_id': sold.id, 'qty': 1}],
            'payment_method': 'cash',
            'payment_status': 'paid',
        })

        call_command('seed_menu', '--tenant', 'seed-test', '--clear', stdout=StringIO())

        self.assertTrue(MenuItem.objects.filter(pk=sold.pk).exists())
        self.assertEqual(MenuItem.objects.filter(tenant=tenant).count(), 7)
        self.assertEqual(MenuItem.objects.filter(tenant=tenant, is_active=True).count(), 7)


class OrderAdminTests(SimpleTestCase):
    """Test billed orders can't be added or deleted from the admin"""

    def test_add_and_delete_disabled(self):
        request = RequestFactory().get('/admin/billing/order/')
        order_admin = OrderAdmin(Order, admin.site)

        self.assertFalse(order_admin.has_add_permission(request))
        self.assertFalse(order_admin.has_delete_permission(request))
        self.assertFalse(order_admin.has_delete_permission(request, Order(order_number='ORD-1-20250101-0001')))
