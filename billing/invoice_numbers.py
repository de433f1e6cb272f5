import logging

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone

from .exceptions import PreconditionFailed
from .models import InvoiceCounter

logger = logging.getLogger(__name__)

INVOICE_NUMBER_FORMAT = 'INV-{tenant_id}-{period}-{sequence:06d}'


class InvoiceNumberService:
    """
    Sequential, gap-free invoice numbers per tenant.

    The counter lives in the invoice_counters table, one row per tenant, and is
    incremented under a row lock inside the caller's transaction. If that
    transaction rolls back the increment goes with it, so no number is burned.
    """

    def __init__(self, reset_monthly=None):
        if reset_monthly is None:
            reset_monthly = getattr(settings, 'INVOICE_SEQUENCE_RESET_MONTHLY', False)
        self.reset_monthly = reset_monthly

    def generate(self, tenant_id: int, using: str = DEFAULT_DB_ALIAS, now=None) -> str:
        """
        Mint the next invoice number for a tenant

        Args:
            tenant_id: Tenant the invoice belongs to
            using: Database alias whose transaction must be open
            now: Generation time (defaults to timezone.now())

        Returns:
            Invoice number formatted INV-{tenant_id}-{YYYYMM}-{000001}

        Raises:
            PreconditionFailed: if no transaction is open on `using`
        """
        if not transaction.get_connection(using).in_atomic_block:
            logger.warning("Invoice number requested outside a transaction for tenant %s", tenant_id)
            raise PreconditionFailed(
                'InvoiceNumberService.generate() must be called within a DB transaction.'
            )

        period = timezone.localtime(now or timezone.now()).strftime('%Y%m')

        # Blocks concurrent callers for the same tenant until we commit or roll back
        counter, created = (
            InvoiceCounter.objects.using(using)
            .select_for_update()
            .get_or_create(tenant_id=tenant_id, defaults={'last_invoice_number': 0})
        )

        if self.reset_monthly and counter.period and counter.period != period:
            counter.last_invoice_number = 0

        counter.last_invoice_number += 1
        counter.period = period
        counter.save(using=using, update_fields=['last_invoice_number', 'period', 'updated_at'])

        invoice_number = INVOICE_NUMBER_FORMAT.format(
            tenant_id=tenant_id,
            period=period,
            sequence=counter.last_invoice_number,
        )
        logger.debug("Minted %s (counter created: %s)", invoice_number, created)
        return invoice_number
