from datetime import timedelta
from pathlib import Path

import pandas as pd
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from dispatch.services import get_dispatch_services
from logistics.models import Order, Restaurant
from users.models import Driver


def _none_if_nan(value):
    return None if pd.isna(value) else float(value)


class Command(BaseCommand):
    help = "Load restaurants.csv, drivers.csv and orders.csv written by scripts/generate_mock_data.py."

    def add_arguments(self, parser):
        parser.add_argument("directory", help="Folder holding the three CSV files.")
        parser.add_argument("--register", action="store_true",
                            help="Register loaded orders with dispatch (history + pending timeout).")

    def handle(self, *args, **options):
        directory = Path(options["directory"])
        files = {name: directory / f"{name}.csv" for name in ("restaurants", "drivers", "orders")}
        missing = [str(path) for path in files.values() if not path.exists()]
        if missing:
            raise CommandError(f"Missing CSV file(s): {', '.join(missing)}")

        restaurants_df = pd.read_csv(files["restaurants"])
        drivers_df = pd.read_csv(files["drivers"])
        orders_df = pd.read_csv(files["orders"])
        now = timezone.now()

        with transaction.atomic():
            restaurant_ids = {}
            for row in restaurants_df.itertuples(index=False):
                restaurant = Restaurant.objects.create(
                    name=row.name, address=row.address, lat=row.lat, lng=row.lng, is_open=bool(row.is_open),
                )
                restaurant_ids[row.ref] = restaurant.pk

            Driver.objects.bulk_create([
                Driver(
                    driver_code=row.driver_code,
                    first_name=row.first_name,
                    last_name=row.last_name,
                    current_lat=row.current_lat,
                    current_lng=row.current_lng,
                    status=row.status,
                    vehicle_type=row.vehicle_type,
                    max_orders_capacity=int(row.max_orders_capacity),
                    is_verified=bool(row.is_verified),
                    last_active_at=now,
                )
                for row in drivers_df.itertuples(index=False)
            ])

            orders = [
                Order.objects.create(
                    order_number=row.order_number,
                    restaurant_id=restaurant_ids[row.restaurant_ref],
                    order_type=row.order_type,
                    status=row.status,
                    delivery_address="" if pd.isna(row.delivery_address) else row.delivery_address,
                    delivery_lat=_none_if_nan(row.delivery_lat),
                    delivery_lng=_none_if_nan(row.delivery_lng),
                    subtotal=round(float(row.subtotal), 2),
                    delivery_fee=round(float(row.delivery_fee), 2),
                    total_amount=round(float(row.total_amount), 2),
                    created_at=now - timedelta(minutes=int(row.minutes_ago)),
                )
                for row in orders_df.itertuples(index=False)
            ]

        if options["register"]:
            dispatcher = get_dispatch_services().dispatcher
            for order in orders:
                dispatcher.register_new_order(order.pk, changed_by="load_mock_data")

        self.stdout.write(self.style.SUCCESS(
            f"Loaded {len(restaurant_ids)} restaurants, {len(drivers_df)} drivers and {len(orders)} orders"
        ))
