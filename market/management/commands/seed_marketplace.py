# Seed Marketplace Management Command
import random
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from faker import Faker

from market.conversations import send_message
from market.exceptions import MarketplaceError
from market.ledger import create_order
from market.models import Product, User

PRODUCE = {
    'vegetables': ['Carrots', 'Kale', 'Heirloom Tomatoes', 'Red Onions', 'Sweet Potatoes', 'Spinach'],
    'fruits': ['Honeycrisp Apples', 'Strawberries', 'Peaches', 'Blueberries', 'Pears'],
    'grains': ['Rolled Oats', 'Wheat Berries', 'Brown Rice', 'Cornmeal'],
    'herbs': ['Basil', 'Cilantro', 'Rosemary', 'Mint'],
    'dairy': ['Farm Eggs', 'Goat Cheese', 'Raw Milk', 'Butter'],
    'other': ['Wildflower Honey', 'Maple Syrup', 'Sunflower Seeds'],
}


class Command(BaseCommand):
    help = 'Populates the database with demo farmers, buyers, products, orders and messages.'

    def add_arguments(self, parser):
        parser.add_argument('--farmers', type=int, default=3, help='Number of farmers to create.')
        parser.add_argument('--buyers', type=int, default=5, help='Number of buyers to create.')
        parser.add_argument('--products', type=int, default=4, help='Products per farmer.')
        parser.add_argument('--orders', type=int, default=10, help='Orders to place across all buyers.')
        parser.add_argument(
            '--password',
            default='password123',
            help='Password given to every demo account.',
        )
        parser.add_argument('--seed', type=int, default=None, help='Random seed for repeatable data.')

    def handle(self, *args, **options):
        for name in ('farmers', 'buyers', 'products', 'orders'):
            if options[name] < 0:
                raise CommandError(f'--{name} cannot be negative.')

        fake = Faker()
        if options['seed'] is not None:
            Faker.seed(options['seed'])
            random.seed(options['seed'])

        with transaction.atomic():
            farmers = self.create_users(fake, User.ROLE_FARMER, options['farmers'], options['password'])
            buyers = self.create_users(fake, User.ROLE_BUYER, options['buyers'], options['password'])
            products = self.create_products(fake, farmers, options['products'])

        orders = self.create_orders(fake, buyers, products, options['orders'])

        self.stdout.write(self.style.SUCCESS(
            f'Created {len(farmers)} farmers, {len(buyers)} buyers, '
            f'{len(products)} products and {orders} orders.'
        ))

    def create_users(self, fake, role, count, password):
        self.stdout.write(f'Creating {count} {role}s...')
        users = []
        for _ in range(count):
            email = fake.unique.email().lower()
            users.append(User.objects.create_user(
                username=email,
                email=email,
                password=password,
                role=role,
                full_name=fake.name(),
                phone_number=fake.numerify('+1 ###-###-####'),
                address=fake.address().replace('\n', ', ')[:300],
            ))
        return users

    def create_products(self, fake, farmers, per_farmer):
        self.stdout.write('Creating products...')
        products = []
        for farmer in farmers:
            for _ in range(per_farmer):
                category = random.choice(list(PRODUCE))
                products.append(Product.objects.create(
                    farmer=farmer,
                    name=random.choice(PRODUCE[category]),
                    description=fake.sentence(nb_words=12),
                    price=Decimal(random.randint(100, 2500)) / 100,
                    quantity=random.randint(5, 80),
                    unit=random.choice([unit for unit, _ in Product.UNIT_CHOICES]),
                    category=category,
                ))
        return products

    def create_orders(self, fake, buyers, products, count):
        if not buyers or not products:
            return 0

        self.stdout.write('Placing orders...')
        placed = 0
        for _ in range(count):
            buyer = random.choice(buyers)
            product = Product.objects.get(pk=random.choice(products).pk)
            if not product.is_available():
                continue

            try:
                order = create_order(
                    actor=buyer,
                    product=product,
                    quantity=random.randint(1, min(5, product.quantity)),
                    delivery_address=buyer.address,
                    notes=fake.sentence() if random.random() < 0.3 else '',
                )
            except MarketplaceError as e:
                self.stdout.write(self.style.WARNING(f'  Skipped order: {e.message}'))
                continue

            send_message(
                sender=buyer,
                receiver=product.farmer,
                content=f'Hi! I just ordered {order.quantity} {product.unit} of {product.name}.',
                product=product,
            )
            placed += 1
        return placed
