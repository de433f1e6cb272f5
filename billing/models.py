from decimal import Decimal, ROUND_HALF_UP

from django.db import models
from django.db.models import F
from django.utils import timezone

from tenants.models import Tenant
from .exceptions import OrderImmutable

CENT = Decimal('0.01')


class MenuItem(models.Model):
	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='menu_items')
	name = models.CharField(max_length=100)
	price = models.DecimalField(max_digits=10, decimal_places=2)
	is_active = models.BooleanField(default=True)

	def __str__(self):
		return self.name


class Voucher(models.Model):
	TYPE_CHOICES = [
		('fixed', 'Fixed'),
		('percentage', 'Percentage'),
	]
	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='vouchers')
	code = models.CharField(max_length=50)
	type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='fixed')
	discount_value = models.DecimalField(max_digits=10, decimal_places=2)
	min_purchase = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
	expiry_date = models.DateField()
	is_active = models.BooleanField(default=True)
	max_uses = models.PositiveIntegerField(null=True, blank=True)
	used_count = models.PositiveIntegerField(default=0)

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=['tenant', 'code'], name='unique_voucher_code_per_tenant'),
		]

	def __str__(self):
		return self.code

	def is_expired(self, today=None):
		today = today or timezone.localdate()
		return self.expiry_date < today

	def is_valid(self, today=None):
		if not self.is_active:
			return False
		if self.is_expired(today):
			return False
		if self.max_uses and self.used_count >= self.max_uses:
			return False
		return True

	def calculate_discount(self, subtotal):
		"""Discount for a subtotal, always within [0, subtotal]"""
		subtotal = Decimal(subtotal)
		if subtotal < self.min_purchase:
			return Decimal('0.00')

		if self.type == 'percentage':
			discount = (subtotal * self.discount_value / 100).quantize(CENT, rounding=ROUND_HALF_UP)
		else:
			discount = self.discount_value

		return min(max(discount, Decimal('0.00')), subtotal).quantize(CENT)

	def increment_usage(self):
		Voucher.objects.filter(pk=self.pk).update(used_count=F('used_count') + 1)
		self.refresh_from_db(fields=['used_count'])


class RestaurantTable(models.Model):
	STATUS_CHOICES = [
		('available', 'Available'),
		('occupied', 'Occupied'),
		('reserved', 'Reserved'),
	]
	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='tables')
	table_number = models.CharField(max_length=20)
	capacity = models.PositiveIntegerField(default=4)
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='available')

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=['tenant', 'table_number'], name='unique_table_number_per_tenant'),
		]

	def __str__(self):
		return f"Table {self.table_number}"


class Order(models.Model):
	TYPE_CHOICES = [
		('dine', 'Dine In'),
		('parcel', 'Parcel'),
		('quick', 'Quick'),
	]
	STATUS_CHOICES = [
		('placed', 'Placed'),
		('confirmed', 'Confirmed'),
		('preparing', 'Preparing'),
		('ready', 'Ready'),
		('served', 'Served'),
		('completed', 'Completed'),
		('cancelled', 'Cancelled'),
	]
	STATUS_FLOW = {
		'placed': 'confirmed',
		'confirmed': 'preparing',
		'preparing': 'ready',
		'ready': 'served',
		'served': 'completed',
	}
	SOURCE_CHOICES = [
		('pos', 'POS'),
		('customer', 'Customer'),
	]
	PAYMENT_STATUS_CHOICES = [
		('pending', 'Pending'),
		('paid', 'Paid'),
	]

	# Set once by BillingService; Order.save() refuses to change them
	FROZEN_FIELDS = (
		'subtotal', 'discount', 'net_amount', 'vat_rate',
		'vat_amount', 'grand_total', 'invoice_number',
	)

	tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='orders')
	voucher = models.ForeignKey(Voucher, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
	order_number = models.CharField(max_length=50, unique=True)
	invoice_number = models.CharField(max_length=50)
	type = models.CharField(max_length=10, choices=TYPE_CHOICES)
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='placed')
	source = models.CharField(max_length=10, choices=SOURCE_CHOICES, default='customer')
	table = models.ForeignKey(RestaurantTable, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
	customer_name = models.CharField(max_length=255, blank=True, null=True)
	customer_phone = models.CharField(max_length=20, blank=True, null=True)
	notes = models.TextField(blank=True, null=True)

	payment_method = models.CharField(max_length=20, default='cash')
	payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
	transaction_id = models.CharField(max_length=100, blank=True, null=True)
	paid_at = models.DateTimeField(null=True, blank=True)

	subtotal = models.DecimalField(max_digits=12, decimal_places=2)
	discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
	net_amount = models.DecimalField(max_digits=12, decimal_places=2)
	vat_rate = models.DecimalField(max_digits=5, decimal_places=2)
	vat_amount = models.DecimalField(max_digits=12, decimal_places=2)
	grand_total = models.DecimalField(max_digits=12, decimal_places=2)

	created_at = models.DateTimeField(auto_now_add=True, db_index=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		ordering = ['-created_at']
		constraints = [
			models.UniqueConstraint(fields=['tenant', 'invoice_number'], name='unique_invoice_number_per_tenant'),
		]

	def __str__(self):
		return f"{self.order_number} ({self.invoice_number})"

	def save(self, *args, **kwargs):
		if not self._state.adding and self.pk:
			stored = Order.objects.filter(pk=self.pk).values(*self.FROZEN_FIELDS).first()
			if stored:
				changed = [f for f in self.FROZEN_FIELDS if stored[f] != getattr(self, f)]
				if changed:
					raise OrderImmutable(
						f"Order {self.order_number}: {', '.join(changed)} cannot be changed after billing."
					)
		super().save(*args, **kwargs)

	@classmethod
	def next_order_number(cls, tenant_id, day=None):
		"""ORD-{tenant}-{YYYYMMDD}-{n}, n one past the highest number issued with that prefix"""
		day = day or timezone.localdate()
		prefix = f"ORD-{tenant_id}-{day:%Y%m%d}-"
		issued = cls.objects.filter(order_number__startswith=prefix).values_list('order_number', flat=True)
		last = max((int(number[len(prefix):]) for number in issued), default=0)
		return f"{prefix}{last + 1:04d}"

	def cancel(self):
		self.status = 'cancelled'
		self.save(update_fields=['status', 'updated_at'])

	def advance_status(self):
		next_status = self.STATUS_FLOW.get(self.status)
		if next_status is None:
			return False
		self.status = next_status
		self.save(update_fields=['status', 'updated_at'])
		return True


class OrderItem(models.Model):
	order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
	menu_item = models.ForeignKey(MenuItem, on_delete=models.PROTECT, related_name='order_items')
	qty = models.PositiveIntegerField()
	price_at_sale = models.DecimalField(max_digits=10, decimal_places=2)
	line_total = models.DecimalField(max_digits=12, decimal_places=2)
	special_instructions = models.CharField(max_length=255, blank=True, null=True)

	class Meta:
		ordering = ['id']

	def __str__(self):
		return f"{self.qty} x {self.menu_item.name} for {self.order.order_number}"


class InvoiceCounter(models.Model):
	tenant_id = models.PositiveIntegerField(unique=True)
	last_invoice_number = models.PositiveIntegerField(default=0)
	# YYYYMM of the last number handed out
	period = models.CharField(max_length=6, blank=True, default='')
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return f"Tenant {self.tenant_id}: {self.last_invoice_number}"
