import secrets
from decimal import Decimal

from django.db import models


def generate_api_key():
	return secrets.token_hex(20)


class Tenant(models.Model):
	name = models.CharField(max_length=255)
	slug = models.SlugField(max_length=100, unique=True)
	email = models.EmailField(blank=True)
	phone = models.CharField(max_length=20, blank=True)
	address = models.TextField(blank=True)
	currency = models.CharField(max_length=3, default='BDT')
	api_key = models.CharField(max_length=64, unique=True, default=generate_api_key)
	is_active = models.BooleanField(default=True)

	# VAT configuration; orders copy the rate at creation time
	vat_registered = models.BooleanField(default=False)
	vat_number = models.CharField(max_length=50, blank=True)
	default_vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))
	vat_inclusive = models.BooleanField(default=False)

	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	def __str__(self):
		return self.name
