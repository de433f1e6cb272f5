import decimal
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from django.conf import settings

from .exceptions import InvalidInput

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def to_decimal(value) -> Decimal:
    """Decimal from str/int/Decimal; floats go through str() so 0.1 stays 0.1"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (decimal.InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Not a valid amount: {value!r}")


@dataclass(frozen=True)
class VatTotals:
    subtotal: Decimal
    discount: Decimal
    net_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    grand_total: Decimal

    def as_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


class VatCalculationService:
    """
    Order totals under VAT-exclusive and VAT-inclusive pricing.

    Pure arithmetic on Decimal values: no database access. The caller persists
    the returned ``vat_rate`` on the order so later rate changes never touch
    historical invoices.
    """

    def __init__(self, rounding: Optional[str] = None):
        self.rounding = rounding or getattr(settings, 'VAT_ROUNDING', decimal.ROUND_DOWN)

    def calculate(self, items: Iterable[Mapping], tenant, discount=ZERO) -> VatTotals:
        """
        Calculate totals for a tenant's VAT configuration

        Args:
            items: Iterable of {'price': amount, 'qty': int}
            tenant: Object exposing vat_registered, default_vat_rate and vat_inclusive
            discount: Flat discount amount, already bounded to the subtotal

        Returns:
            VatTotals with every amount quantized to 2 decimal places
        """
        if tenant.vat_registered:
            vat_rate = to_decimal(tenant.default_vat_rate)
        else:
            vat_rate = ZERO

        return self.compute_totals(items, vat_rate, bool(tenant.vat_inclusive), discount)

    def compute_totals(self, items: Iterable[Mapping], vat_rate, vat_inclusive: bool, discount=ZERO) -> VatTotals:
        vat_rate = to_decimal(vat_rate).quantize(CENT)
        if vat_rate < 0:
            raise InvalidInput('VAT rate cannot be negative.')

        subtotal = ZERO
        for item in items:
            subtotal += self._line_total(item)
        subtotal = subtotal.quantize(CENT)

        discount = to_decimal(discount).quantize(CENT)
        if discount < 0:
            raise InvalidInput('Discount cannot be negative.')
        if discount > subtotal:
            raise InvalidInput('Discount cannot exceed subtotal.')

        after_discount = subtotal - discount

        if vat_inclusive:
            # Prices already contain VAT: extract it, the customer pays the same
            vat_amount = self._round(after_discount * vat_rate / (HUNDRED + vat_rate))
            net_amount = (after_discount - vat_amount).quantize(CENT)
            grand_total = after_discount
        else:
            net_amount = after_discount
            vat_amount = self._round(net_amount * vat_rate / HUNDRED)
            grand_total = (net_amount + vat_amount).quantize(CENT)

        return VatTotals(
            subtotal=subtotal,
            discount=discount,
            net_amount=net_amount,
            vat_rate=vat_rate,
            vat_amount=vat_amount,
            grand_total=grand_total,
        )

    def _line_total(self, item: Mapping) -> Decimal:
        qty = item.get('qty')
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            raise InvalidInput(f"Quantity must be a positive integer, got {qty!r}.")

        price = to_decimal(item.get('price'))
        if price < 0:
            raise InvalidInput(f"Price cannot be negative, got {price}.")

        return price * qty

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(CENT, rounding=self.rounding)
