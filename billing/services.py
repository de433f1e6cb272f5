import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from tenants.models import Tenant
from .exceptions import EmptyOrder, InvalidQuantity, InvalidTable, InvalidVoucher, ItemUnavailable
from .invoice_numbers import InvoiceNumberService
from .models import MenuItem, Order, OrderItem, RestaurantTable, Voucher
from .vat import ZERO, VatCalculationService

logger = logging.getLogger(__name__)


class BillingService:
    """
    Creates billed orders: priced, discounted, VAT-calculated and invoice-numbered
    in one database transaction.
    """

    def __init__(self, vat_service=None, invoice_service=None):
        self.vat_service = vat_service or VatCalculationService()
        self.invoice_service = invoice_service or InvoiceNumberService()

    def create_order(self, tenant: Tenant, data: dict, source: str = 'customer') -> Order:
        """
        Create a VAT-compliant order with an invoice number

        Steps, all inside one transaction:
            1. Check a dine-in table belongs to the tenant
            2. Price every line from the current active menu item
            3. Apply the voucher discount, if a code was given
            4. Calculate VAT (inclusive or exclusive per tenant setting)
            5. Mint the next invoice number for the tenant
            6. Store the order and its items with the price frozen per line
            7. Mark the table occupied

        Args:
            tenant: Tenant the order belongs to
            data: Validated order data (type, items, payment_method, ...)
            source: 'pos' or 'customer'

        Returns:
            The persisted Order with its items

        Raises:
            EmptyOrder, InvalidQuantity, InvalidTable, ItemUnavailable, InvalidVoucher
        """
        requested = self._validate_items(tenant, data.get('items') or [])

        with transaction.atomic():
            table = self._resolve_table(tenant, data)

            # Prices read inside the transaction; later menu edits don't reach this order
            menu_items = MenuItem.objects.filter(
                tenant=tenant,
                is_active=True,
                id__in={line['menu_item_id'] for line in requested},
            ).in_bulk()

            order_items = []
            calc_items = []
            for line in requested:
                menu_item = menu_items.get(line['menu_item_id'])
                if menu_item is None:
                    logger.warning("Tenant %s ordered unavailable menu item %s", tenant.id, line['menu_item_id'])
                    raise ItemUnavailable(line['menu_item_id'])

                order_items.append(OrderItem(
                    menu_item=menu_item,
                    qty=line['qty'],
                    price_at_sale=menu_item.price,
                    line_total=menu_item.price * line['qty'],
                    special_instructions=line.get('special_instructions') or None,
                ))
                calc_items.append({'price': menu_item.price, 'qty': line['qty']})

            voucher, discount = self._apply_voucher(tenant, data.get('voucher_code'), calc_items)

            totals = self.vat_service.calculate(calc_items, tenant, discount)

            invoice_number = self.invoice_service.generate(tenant.id)

            is_paid = data.get('payment_status', 'pending') == 'paid'

            order = Order.objects.create(
                tenant=tenant,
                voucher=voucher,
                order_number=Order.next_order_number(tenant.id),
                invoice_number=invoice_number,
                type=data['type'],
                status='placed',
                source=source,
                table=table,
                customer_name=data.get('customer_name'),
                customer_phone=data.get('customer_phone'),
                notes=data.get('notes'),
                payment_method=data.get('payment_method') or 'cash',
                payment_status='paid' if is_paid else 'pending',
                transaction_id=data.get('transaction_id'),
                paid_at=timezone.now() if is_paid else None,
                **totals.as_dict(),
            )

            for order_item in order_items:
                order_item.order = order
            OrderItem.objects.bulk_create(order_items)

            if table is not None:
                RestaurantTable.objects.filter(pk=table.pk).update(status='occupied')

        logger.info(
            "Created order %s invoice %s for tenant %s: grand total %s (VAT %s at %s%%)",
            order.order_number, order.invoice_number, tenant.id,
            order.grand_total, order.vat_amount, order.vat_rate,
        )
        return Order.objects.prefetch_related('items__menu_item').select_related('tenant', 'voucher', 'table').get(pk=order.pk)

    def _validate_items(self, tenant, items):
        if not items:
            raise EmptyOrder()

        max_qty = getattr(settings, 'BILLING_MAX_ITEM_QTY', 100)
        for line in items:
            qty = line.get('qty')
            if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1 or qty > max_qty:
                logger.warning("Tenant %s ordered invalid quantity %r", tenant.id, qty)
                raise InvalidQuantity(f"Quantity must be between 1 and {max_qty}, got {qty!r}.")
        return items

    def _apply_voucher(self, tenant, code, calc_items):
        if not code:
            return None, ZERO

        voucher = (
            Voucher.objects.select_for_update()
            .filter(tenant=tenant, code=code)
            .first()
        )
        if voucher is None or not voucher.is_valid():
            logger.warning("Tenant %s rejected voucher %r", tenant.id, code)
            raise InvalidVoucher(f"Voucher '{code}' is invalid, expired or fully used.")

        subtotal = sum((item['price'] * item['qty'] for item in calc_items), ZERO)
        discount = voucher.calculate_discount(subtotal)
        voucher.increment_usage()
        return voucher, discount

    def _resolve_table(self, tenant, data):
        """Dine-in orders may name one of the tenant's tables; other types ignore table_id"""
        table_id = data.get('table_id')
        if data.get('type') != 'dine' or not table_id:
            return None

        table = RestaurantTable.objects.filter(tenant=tenant, pk=table_id).first()
        if table is None:
            logger.warning("Tenant %s selected unknown table %s", tenant.id, table_id)
            raise InvalidTable()
        return table
