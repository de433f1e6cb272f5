import logging
from datetime import date as date_cls
from decimal import Decimal

from django.db.models import Count, Sum
from django.db.models.functions import TruncDate
from django.utils.dateparse import parse_date

from billing.models import Order

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def as_date(value):
    if isinstance(value, date_cls):
        return value
    parsed = parse_date(str(value))
    if parsed is None:
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}")
    return parsed


def money(value):
    """Aggregates come back as None for empty sets"""
    return Decimal(value or 0).quantize(CENT)


class VatReportService:
    """
    VAT compliance reports built from the amounts stored on each order.

    VAT is never recalculated here: an order keeps the rate and amounts it was
    billed with, so a later change of the tenant's rate leaves old reports
    untouched. Cancelled orders are excluded.
    """

    def billable_orders(self, tenant_id):
        return Order.objects.filter(tenant_id=tenant_id).exclude(status='cancelled')

    def daily_z_report(self, tenant_id, date):
        """End-of-day Z report for one tenant and one local calendar day"""
        day = as_date(date)
        orders = self.billable_orders(tenant_id).filter(created_at__date=day)

        totals = orders.aggregate(
            order_count=Count('id'),
            total_subtotal=Sum('subtotal'),
            total_discount=Sum('discount'),
            total_net_amount=Sum('net_amount'),
            total_vat_collected=Sum('vat_amount'),
            total_sales=Sum('grand_total'),
        )

        by_payment_method = [
            {
                'payment_method': row['payment_method'],
                'count': row['count'],
                'total': money(row['total']),
                'vat_amount': money(row['vat_amount']),
            }
            for row in orders.order_by().values('payment_method').annotate(
                count=Count('id'),
                total=Sum('grand_total'),
                vat_amount=Sum('vat_amount'),
            ).order_by('payment_method')
        ]

        by_order_type = [
            {
                'type': row['type'],
                'count': row['count'],
                'total': money(row['total']),
            }
            for row in orders.order_by().values('type').annotate(
                count=Count('id'),
                total=Sum('grand_total'),
            ).order_by('type')
        ]

        logger.debug("Built Z report for tenant %s on %s: %s orders", tenant_id, day, totals['order_count'])

        return {
            'date': day,
            'tenant_id': tenant_id,
            'summary': {
                'order_count': totals['order_count'],
                'total_subtotal': money(totals['total_subtotal']),
                'total_discount': money(totals['total_discount']),
                'total_net_amount': money(totals['total_net_amount']),
                'total_vat_collected': money(totals['total_vat_collected']),
                'total_sales': money(totals['total_sales']),
            },
            'by_payment_method': by_payment_method,
            'by_order_type': by_order_type,
        }

    def monthly_vat_report(self, tenant_id, date_from, date_to):
        """VAT return figures for an inclusive range of local calendar days"""
        start = as_date(date_from)
        end = as_date(date_to)
        orders = self.billable_orders(tenant_id).filter(created_at__date__range=(start, end))

        totals = orders.aggregate(
            total_invoices=Count('id'),
            total_subtotal=Sum('subtotal'),
            total_discount=Sum('discount'),
            total_taxable_sales=Sum('net_amount'),
            total_vat_collected=Sum('vat_amount'),
            total_sales=Sum('grand_total'),
        )

        daily_breakdown = [
            {
                'date': row['day'],
                'invoice_count': row['invoice_count'],
                'taxable_sales': money(row['taxable_sales']),
                'vat_collected': money(row['vat_collected']),
                'total_sales': money(row['total_sales']),
                'discounts': money(row['discounts']),
            }
            for row in orders.order_by().annotate(day=TruncDate('created_at')).values('day').annotate(
                invoice_count=Count('id'),
                taxable_sales=Sum('net_amount'),
                vat_collected=Sum('vat_amount'),
                total_sales=Sum('grand_total'),
                discounts=Sum('discount'),
            ).order_by('day')
        ]

        # One row per rate actually charged, so a mid-period rate change shows as two cohorts
        by_vat_rate = [
            {
                'vat_rate': money(row['vat_rate']),
                'invoice_count': row['invoice_count'],
                'taxable_sales': money(row['taxable_sales']),
                'vat_collected': money(row['vat_collected']),
            }
            for row in orders.order_by().values('vat_rate').annotate(
                invoice_count=Count('id'),
                taxable_sales=Sum('net_amount'),
                vat_collected=Sum('vat_amount'),
            ).order_by('vat_rate')
        ]

        logger.debug(
            "Built VAT report for tenant %s from %s to %s: %s invoices",
            tenant_id, start, end, totals['total_invoices'],
        )

        return {
            'period': {'from': start, 'to': end},
            'tenant_id': tenant_id,
            'summary': {
                'total_invoices': totals['total_invoices'],
                'total_subtotal': money(totals['total_subtotal']),
                'total_discount': money(totals['total_discount']),
                'total_taxable_sales': money(totals['total_taxable_sales']),
                'total_vat_collected': money(totals['total_vat_collected']),
                'total_sales': money(totals['total_sales']),
            },
            'daily_breakdown': daily_breakdown,
            'by_vat_rate': by_vat_rate,
        }
