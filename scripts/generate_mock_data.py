import argparse
from pathlib import Path

import numpy as np
import pandas as pd


def generate_mock_data(output_dir="mock_data", num_restaurants=40, num_drivers=100, num_orders=1000, seed=None):
    """
    Generates restaurants, drivers and orders CSVs for `manage.py load_mock_data`.
    Restaurants are packed into a ~5km box so many orders share or neighbour a pickup,
    which gives the batch eligibility check realistic pairs on both sides of the
    500m restaurant-distance threshold.
    """
    # Center around Algiers
    CENTER_LAT = 36.753768
    CENTER_LON = 3.058756

    rng = np.random.default_rng(seed)
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)

    # 1. Restaurants (pickups), roughly 0.05 degrees around the center
    restaurants = pd.DataFrame({
        "ref": [f"r_{index + 1:03d}" for index in range(num_restaurants)],
        "name": [f"Restaurant {index + 1}" for index in range(num_restaurants)],
        "lat": np.round(CENTER_LAT + rng.uniform(-0.05, 0.05, num_restaurants), 6),
        "lng": np.round(CENTER_LON + rng.uniform(-0.05, 0.05, num_restaurants), 6),
    })
    restaurants["address"] = restaurants["name"] + ", Algiers"
    restaurants["is_open"] = rng.random(num_restaurants) < 0.9

    # 2. Drivers scattered around the center (+/- ~8km)
    drivers = pd.DataFrame({
        "driver_code": [f"DRV-{index + 1:03d}" for index in range(num_drivers)],
        "first_name": [f"Driver{index + 1}" for index in range(num_drivers)],
        "last_name": "Mock",
        "current_lat": np.round(CENTER_LAT + (rng.random(num_drivers) - 0.5) * 0.15, 6),
        "current_lng": np.round(CENTER_LON + (rng.random(num_drivers) - 0.5) * 0.15, 6),
        # 80% available, 20% offline
        "status": rng.choice(["available", "offline"], size=num_drivers, p=[0.8, 0.2]),
        "vehicle_type": rng.choice(["motorcycle", "car", "bicycle"], size=num_drivers, p=[0.7, 0.2, 0.1]),
        "max_orders_capacity": rng.integers(2, 6, num_drivers),
        "is_verified": rng.random(num_drivers) < 0.95,
    })

    # 3. Orders, dropoffs within ~5-10km of their restaurant
    picks = rng.integers(0, num_restaurants, num_orders)
    picked = restaurants.iloc[picks].reset_index(drop=True)
    subtotal = np.round(rng.uniform(500, 6000, num_orders), 2)
    delivery_fee = np.round(rng.choice([150, 200, 250, 300, 400], size=num_orders), 2)
    order_type = rng.choice(["delivery", "pickup"], size=num_orders, p=[0.85, 0.15])
    is_delivery = order_type == "delivery"

    orders = pd.DataFrame({
        "order_number": [f"ORD-{index + 1:06d}" for index in range(num_orders)],
        "restaurant_ref": picked["ref"],
        "order_type": order_type,
        "status": "pending",
        "delivery_lat": np.where(is_delivery, np.round(picked["lat"] + rng.uniform(-0.08, 0.08, num_orders), 6), np.nan),
        "delivery_lng": np.where(is_delivery, np.round(picked["lng"] + rng.uniform(-0.08, 0.08, num_orders), 6), np.nan),
        "subtotal": subtotal,
        "delivery_fee": np.where(is_delivery, delivery_fee, 0),
        "minutes_ago": rng.integers(0, 60, num_orders),
    })
    orders["total_amount"] = np.round(orders["subtotal"] + orders["delivery_fee"], 2)
    orders["delivery_address"] = np.where(is_delivery, "Mock address, Algiers", "")

    restaurants.to_csv(output / "restaurants.csv", index=False)
    drivers.to_csv(output / "drivers.csv", index=False)
    orders.to_csv(output / "orders.csv", index=False)
    print(f"✅ Generated {num_restaurants} restaurants, {num_drivers} drivers and {num_orders} orders in '{output}'")

    # Quick preview of batching density
    print("\nTop 5 Restaurants (Batching Potential):")
    counts = orders.loc[is_delivery, "restaurant_ref"].value_counts().head(5)
    for ref, count in counts.items():
        print(f"  {ref}: {count} delivery orders")

    return restaurants, drivers, orders


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate mock dispatch data")
    parser.add_argument("--output-dir", default="mock_data")
    parser.add_argument("--restaurants", type=int, default=40)
    parser.add_argument("--drivers", type=int, default=100)
    parser.add_argument("--orders", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()
    generate_mock_data(args.output_dir, args.restaurants, args.drivers, args.orders, args.seed)
