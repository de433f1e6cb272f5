from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone

from tenants.models import Tenant
from billing.models import MenuItem, RestaurantTable, Voucher


class Command(BaseCommand):
    help = 'Seed the database with a demo restaurant, its menu, tables and a voucher'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tenant',
            default='demo-restaurant',
            help='Slug of the restaurant to seed (created if missing)',
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear the restaurant\'s existing menu items before seeding',
        )

    def handle(self, *args, **options):
        tenant, created = Tenant.objects.get_or_create(
            slug=options['tenant'],
            defaults={
                'name': options['tenant'].replace('-', ' ').title(),
                'email': f"{options['tenant']}@example.com",
                'address': '123 Test Street, Dhaka',
                'vat_registered': True,
                'vat_number': 'BIN-000000000',
                'default_vat_rate': Decimal('5.00'),
                'vat_inclusive': False,
            }
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f"Created restaurant: {tenant.name}"))
        self.stdout.write(f"API key: {tenant.api_key}")

        if options['clear']:
            self.stdout.write('Clearing existing menu items...')
            # Items already sold stay; they are protected by their order lines
            MenuItem.objects.filter(tenant=tenant, order_items__isnull=True).delete()
            MenuItem.objects.filter(tenant=tenant).update(is_active=False)
            self.stdout.write(
                self.style.SUCCESS('Successfully cleared menu items')
            )

        menu_items = [
            {"name": "Biriyani", "price": Decimal('250.00')},
            {"name": "Kacchi", "price": Decimal('350.00')},
            {"name": "Chicken Roast", "price": Decimal('180.00')},
            {"name": "Beef Tehari", "price": Decimal('220.00')},
            {"name": "Borhani", "price": Decimal('60.00')},
            {"name": "Firni", "price": Decimal('80.00')},
            {"name": "Mineral Water", "price": Decimal('20.00')},
        ]

        created_items = []
        for item_data in menu_items:
            item, created = MenuItem.objects.get_or_create(
                tenant=tenant,
                name=item_data['name'],
                defaults={'price': item_data['price']}
            )
            if created:
                created_items.append(item)
                self.stdout.write(f"Created: {item.name} - {item.price}")
            elif not item.is_active:
                item.is_active = True
                item.price = item_data['price']
                item.save(update_fields=['is_active', 'price'])
                self.stdout.write(f"Reactivated: {item.name} - {item.price}")
            else:
                self.stdout.write(f"Already exists: {item.name}")

        for number in range(1, 5):
            table, created = RestaurantTable.objects.get_or_create(
                tenant=tenant,
                table_number=f"T{number}",
            )
            if created:
                self.stdout.write(f"Created table: {table.table_number}")

        voucher, created = Voucher.objects.get_or_create(
            tenant=tenant,
            code='WELCOME10',
            defaults={
                'type': 'percentage',
                'discount_value': Decimal('10.00'),
                'expiry_date': timezone.localdate() + timedelta(days=30),
                'max_uses': 100,
            }
        )
        if created:
            self.stdout.write(f"Created voucher: {voucher.code}")

        self.stdout.write(
            self.style.SUCCESS(f'\nTotal new menu items created: {len(created_items)}')
        )

        self.stdout.write("\nAll menu items for this restaurant:")
        self.stdout.write("-" * 50)
        for item in MenuItem.objects.filter(tenant=tenant).order_by('name'):
            self.stdout.write(
                f"ID: {item.id:3d} | {item.name:20s} | {item.price:8.2f} | {'active' if item.is_active else 'inactive'}"
            )
