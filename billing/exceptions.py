class BillingError(Exception):
    """Base class for billing errors; `code` identifies the kind to API clients"""
    code = 'billing_error'
    default_message = 'Billing error.'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self):
        return str(self)


class InvalidInput(BillingError):
    code = 'invalid_input'
    default_message = 'Invalid billing input.'


class PreconditionFailed(BillingError):
    code = 'precondition_failed'
    default_message = 'Precondition failed.'


class ItemUnavailable(BillingError):
    code = 'item_unavailable'

    def __init__(self, menu_item_id):
        self.menu_item_id = menu_item_id
        super().__init__(f"Menu item #{menu_item_id} is unavailable.")


class InvalidVoucher(BillingError):
    code = 'invalid_voucher'
    default_message = 'Voucher is invalid, expired or fully used.'


class EmptyOrder(BillingError):
    code = 'empty_order'
    default_message = 'At least one item is required.'


class InvalidQuantity(BillingError):
    code = 'invalid_quantity'
    default_message = 'Item quantity is out of range.'


class OrderImmutable(BillingError):
    code = 'order_immutable'
    default_message = 'Billed order totals cannot be changed.'


class NotFound(BillingError):
    code = 'not_found'
    default_message = 'Not found.'


class InvalidTable(BillingError):
    code = 'invalid_table'
    default_message = 'Invalid table selected.'
