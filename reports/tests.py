import calendar
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from billing.models import MenuItem, Order
from billing.services import BillingService
from tenants.models import Tenant
from .services import VatReportService


def backdate(order, day):
    """Move an order to noon local time on `day`; created_at is auto_now_add"""
    moment = timezone.make_aware(datetime(day.year, day.month, day.day, 12, 0))
    Order.objects.filter(pk=order.pk).update(created_at=moment)


@override_settings(VAT_ROUNDING='ROUND_DOWN', INVOICE_SEQUENCE_RESET_MONTHLY=False)
class VatReportServiceTests(TestCase):
    """Test Z reports and VAT reports against stored order values"""

    def setUp(self):
        self.tenant = Tenant.objects.create(
            name='Report Restaurant',
            slug='report-restaurant',
            vat_registered=True,
            vat_number='BIN-REPORT',
            default_vat_rate=Decimal('5.00'),
            vat_inclusive=False,
        )
        self.item = MenuItem.objects.create(tenant=self.tenant, name='Test Item', price=Decimal('100.00'))
        self.billing = BillingService()
        self.reports = VatReportService()
        self.today = timezone.localdate()

    def place_order(self, qty=1, tenant=None, item=None, **overrides):
        data = {
            'type': 'dine',
            'items': [{'menu_item_id': (item or self.item).id, 'qty': qty}],
            'payment_method': 'cash',
            'payment_status': 'paid',
        }
        data.update(overrides)
        return self.billing.create_order(tenant or self.tenant, data, source='pos')

    def test_daily_z_report_totals(self):
        """Test the Z report sums the day's orders"""
        self.place_order(qty=2)
        self.place_order(qty=2)

        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['date'], self.today)
        self.assertEqual(report['tenant_id'], self.tenant.id)
        summary = report['summary']
        self.assertEqual(summary['order_count'], 2)
        self.assertEqual(summary['total_subtotal'], Decimal('400.00'))
        self.assertEqual(summary['total_discount'], Decimal('0.00'))
        self.assertEqual(summary['total_net_amount'], Decimal('400.00'))
        self.assertEqual(summary['total_vat_collected'], Decimal('20.00'))
        self.assertEqual(summary['total_sales'], Decimal('420.00'))

    def test_daily_z_report_excludes_cancelled_orders(self):
        kept = self.place_order()
        self.place_order(qty=3).cancel()

        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['summary']['order_count'], 1)
        self.assertEqual(report['summary']['total_sales'], kept.grand_total)

    def test_daily_z_report_breakdowns(self):
        """Test payment method and order type groupings"""
        self.place_order(payment_method='cash')
        self.place_order(payment_method='card', type='parcel', customer_name='Rahim')
        self.place_order(payment_method='cash', qty=2)

        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['by_payment_method'], [
            {'payment_method': 'card', 'count': 1, 'total': Decimal('105.00'), 'vat_amount': Decimal('5.00')},
            {'payment_method': 'cash', 'count': 2, 'total': Decimal('315.00'), 'vat_amount': Decimal('15.00')},
        ])
        self.assertEqual(report['by_order_type'], [
            {'type': 'dine', 'count': 2, 'total': Decimal('315.00')},
            {'type': 'parcel', 'count': 1, 'total': Decimal('105.00')},
        ])

    def test_daily_z_report_only_counts_that_day(self):
        self.place_order()
        backdate(self.place_order(qty=5), self.today - timedelta(days=1))

        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['summary']['order_count'], 1)
        self.assertEqual(report['summary']['total_sales'], Decimal('105.00'))

    def test_daily_z_report_accepts_iso_string(self):
        self.place_order()

        report = self.reports.daily_z_report(self.tenant.id, self.today.isoformat())

        self.assertEqual(report['date'], self.today)
        self.assertEqual(report['summary']['order_count'], 1)

    def test_empty_day_reports_zeros(self):
        """Test a day without orders reports zeros, not None"""
        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['summary']['order_count'], 0)
        self.assertEqual(report['summary']['total_vat_collected'], Decimal('0.00'))
        self.assertEqual(report['summary']['total_sales'], Decimal('0.00'))
        self.assertEqual(report['by_payment_method'], [])
        self.assertEqual(report['by_order_type'], [])

    def test_unknown_tenant_reports_zeros(self):
        self.place_order()

        report = self.reports.daily_z_report(999999, self.today)

        self.assertEqual(report['summary']['order_count'], 0)
        self.assertEqual(report['summary']['total_sales'], Decimal('0.00'))

    def test_reports_are_tenant_scoped(self):
        other = Tenant.objects.create(
            name='Other', slug='other', vat_registered=True, default_vat_rate=Decimal('15.00')
        )
        other_item = MenuItem.objects.create(tenant=other, name='Pizza', price=Decimal('1000.00'))
        self.place_order()
        self.place_order(tenant=other, item=other_item)

        report = self.reports.daily_z_report(self.tenant.id, self.today)

        self.assertEqual(report['summary']['order_count'], 1)
        self.assertEqual(report['summary']['total_vat_collected'], Decimal('5.00'))

    def test_monthly_vat_report_totals(self):
        """Test the VAT report over the current month"""
        for _ in range(3):
            self.place_order()

        first = self.today.replace(day=1)
        last = self.today.replace(day=calendar.monthrange(self.today.year, self.today.month)[1])
        report = self.reports.monthly_vat_report(self.tenant.id, first, last)

        self.assertEqual(report['period'], {'from': first, 'to': last})
        summary = report['summary']
        self.assertEqual(summary['total_invoices'], 3)
        self.assertEqual(summary['total_taxable_sales'], Decimal('300.00'))
        self.assertEqual(summary['total_vat_collected'], Decimal('15.00'))
        self.assertEqual(summary['total_sales'], Decimal('315.00'))
        self.assertEqual(len(report['daily_breakdown']), 1)
        self.assertEqual(report['daily_breakdown'][0]['date'], self.today)
        self.assertEqual(report['daily_breakdown'][0]['invoice_count'], 3)

    def test_reports_use_stored_vat_not_current_rate(self):
        """Test a rate change after billing doesn't restate old orders"""
        self.place_order()

        self.tenant.default_vat_rate = Decimal('15.00')
        self.tenant.save()

        daily = self.reports.daily_z_report(self.tenant.id, self.today)
        monthly = self.reports.monthly_vat_report(self.tenant.id, self.today, self.today)

        self.assertEqual(daily['summary']['total_vat_collected'], Decimal('5.00'))
        self.assertEqual(daily['summary']['total_sales'], Decimal('105.00'))
        self.assertEqual(monthly['by_vat_rate'], [{
            'vat_rate': Decimal('5.00'),
            'invoice_count': 1,
            'taxable_sales': Decimal('100.00'),
            'vat_collected': Decimal('5.00'),
        }])

    def test_rate_change_splits_vat_rate_cohorts(self):
        """Test orders billed at different rates are reported separately"""
        self.place_order()

        self.tenant.default_vat_rate = Decimal('15.00')
        self.tenant.save()
        self.place_order()

        report = self.reports.monthly_vat_report(self.tenant.id, self.today, self.today)

        self.assertEqual(report['summary']['total_vat_collected'], Decimal('20.00'))
        self.assertEqual(report['by_vat_rate'], [
            {
                'vat_rate': Decimal('5.00'),
                'invoice_count': 1,
                'taxable_sales': Decimal('100.00'),
                'vat_collected': Decimal('5.00'),
            },
            {
                'vat_rate': Decimal('15.00'),
                'invoice_count': 1,
                'taxable_sales': Decimal('100.00'),
                'vat_collected': Decimal('15.00'),
            },
        ])

    def test_monthly_report_equals_sum_of_daily_reports(self):
        """Test the month's VAT is exactly the sum of its Z reports"""
        placed = [
            (date(2025, 3, 3), 1),
            (date(2025, 3, 3), 3),
            (date(2025, 3, 10), 2),
            (date(2025, 3, 31), 7),
            (date(2025, 4, 1), 4),   # next month
        ]
        for day, qty in placed:
            backdate(self.place_order(qty=qty), day)
        cancelled = self.place_order(qty=9)
        cancelled.cancel()
        backdate(cancelled, date(2025, 3, 10))

        monthly = self.reports.monthly_vat_report(self.tenant.id, '2025-03-01', '2025-03-31')

        daily_vat = Decimal('0.00')
        daily_sales = Decimal('0.00')
        daily_count = 0
        for day in range(1, 32):
            summary = self.reports.daily_z_report(self.tenant.id, date(2025, 3, day))['summary']
            daily_vat += summary['total_vat_collected']
            daily_sales += summary['total_sales']
            daily_count += summary['order_count']

        self.assertEqual(monthly['summary']['total_invoices'], 4)
        self.assertEqual(monthly['summary']['total_invoices'], daily_count)
        self.assertEqual(monthly['summary']['total_vat_collected'], daily_vat)
        self.assertEqual(monthly['summary']['total_sales'], daily_sales)
        # (1 + 3 + 2 + 7) x 100 at 5%
        self.assertEqual(monthly['summary']['total_vat_collected'], Decimal('65.00'))
        self.assertEqual(
            [(row['date'], row['invoice_count']) for row in monthly['daily_breakdown']],
            [(date(2025, 3, 3), 2), (date(2025, 3, 10), 1), (date(2025, 3, 31), 1)]
        )

    def test_empty_range_reports_zeros(self):
        report = self.reports.monthly_vat_report(self.tenant.id, date(2020, 1, 1), date(2020, 1, 31))

        self.assertEqual(report['summary']['total_invoices'], 0)
        self.assertEqual(report['summary']['total_vat_collected'], Decimal('0.00'))
        self.assertEqual(report['daily_breakdown'], [])
        self.assertEqual(report['by_vat_rate'], [])

    def test_invalid_date_rejected(self):
        with self.assertRaises(ValueError):
            self.reports.daily_z_report(self.tenant.id, 'yesterday')


class VatReportAPITests(APITestCase):
    """Test VAT report endpoints"""

    def setUp(self):
        self.tenant = Tenant.objects.create(
            name='Report API Restaurant',
            slug='report-api-restaurant',
            vat_registered=True,
            default_vat_rate=Decimal('5.00'),
        )
        item = MenuItem.objects.create(tenant=self.tenant, name='Test Item', price=Decimal('100.00'))
        BillingService().create_order(self.tenant, {
            'type': 'quick',
            'items': [{'menu_item_id': item.id, 'qty': 1}],
            'payment_method': 'card',
            'payment_status': 'paid',
        }, source='pos')
        self.today = timezone.localdate()
        # Add API key to all requests
        self.client.defaults['HTTP_X_API_KEY'] = self.tenant.api_key

    def test_daily_report(self):
        """Test the daily Z report endpoint"""
        response = self.client.get(reverse('vat_daily_report'), {'date': self.today.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['date'], self.today.isoformat())
        self.assertEqual(response.data['tenant_id'], self.tenant.id)
        self.assertEqual(response.data['summary']['order_count'], 1)
        self.assertEqual(response.data['summary']['total_vat_collected'], '5.00')
        self.assertEqual(response.data['summary']['total_sales'], '105.00')
        self.assertEqual(response.data['by_payment_method'][0]['payment_method'], 'card')
        self.assertEqual(response.data['by_order_type'][0]['type'], 'quick')

    def test_daily_report_requires_date(self):
        response = self.client.get(reverse('vat_daily_report'))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('date', response.data)

    def test_monthly_report(self):
        """Test the monthly VAT report endpoint"""
        params = {'from': self.today.replace(day=1).isoformat(), 'to': self.today.isoformat()}

        response = self.client.get(reverse('vat_monthly_report'), params)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['period']['from'], params['from'])
        self.assertEqual(response.data['period']['to'], params['to'])
        self.assertEqual(response.data['summary']['total_invoices'], 1)
        self.assertEqual(response.data['summary']['total_taxable_sales'], '100.00')
        self.assertEqual(response.data['by_vat_rate'][0]['vat_rate'], '5.00')
        self.assertEqual(len(response.data['daily_breakdown']), 1)

    def test_monthly_report_rejects_reversed_range(self):
        params = {'from': '2025-03-31', 'to': '2025-03-01'}

        response = self.client.get(reverse('vat_monthly_report'), params)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('to', response.data)

    def test_reports_require_api_key(self):
        del self.client.defaults['HTTP_X_API_KEY']

        response = self.client.get(reverse('vat_daily_report'), {'date': self.today.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
