#!/usr/bin/env python3
"""
Traffic generator for the storefront service.
Simulates shoppers browsing the catalog, filling carts and placing orders.
"""

import random
import threading
import time
from datetime import datetime

import requests

API_URL = "http://localhost:8000/api/v1"

# Accounts seeded by SEED_DEMO_DATA
CREDENTIALS = [
    {"username": "demo_buyer", "password": "buyer123"},
    {"username": "demo_seller", "password": "seller123"},
]

CITIES = ["Kathmandu", "Pokhara", "Lalitpur", "Bhaktapur", "Biratnagar"]

# Weight for actions
ACTION_WEIGHTS = {
    "browse": 0.4,
    "add_to_cart": 0.3,
    "remove_from_cart": 0.05,
    "place_order": 0.15,
    "view_cart": 0.05,
    "view_orders": 0.05,
}


def log(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {message}")


class Shopper:
    def __init__(self, shopper_id, city):
        self.shopper_id = shopper_id
        self.city = city
        self.session = requests.Session()
        self.products = []

    def _data(self, response):
        return response.json().get("data")

    def authenticate(self):
        """Log in with a demo account; ~1% of attempts use a wrong password."""
        cred = dict(random.choice(CREDENTIALS))
        if random.random() < 0.01:
            cred["password"] = "wrong_password"

        try:
            response = self.session.post(f"{API_URL}/users/login", json=cred, timeout=5)
            if response.status_code == 200:
                token = self._data(response)["access_token"]
                self.session.headers["Authorization"] = f"Bearer {token}"
                log(f"Shopper {self.shopper_id} ({self.city}): Authenticated as {cred['username']}")
                return True
            log(f"Shopper {self.shopper_id} ({self.city}): Authentication failed - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Authentication error - {e}")
        return False

    def fetch_products(self):
        try:
            response = self.session.get(f"{API_URL}/products", timeout=5)
            if response.status_code == 200:
                self.products = self._data(response) or []
                log(f"Shopper {self.shopper_id} ({self.city}): Fetched {len(self.products)} products")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to fetch products - {e}")
        return False

    def browse_products(self):
        if not self.products:
            self.fetch_products()
        if not self.products:
            return False

        product = random.choice(self.products)
        try:
            response = self.session.get(f"{API_URL}/products/{product['id']}", timeout=5)
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id} ({self.city}): Browsing {product['name']}")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to browse product - {e}")
        return False

    def add_to_cart(self):
        if not self.products:
            self.fetch_products()
        if not self.products:
            return False

        product = random.choice(self.products)
        try:
            response = self.session.post(
                f"{API_URL}/cart",
                json={"product_id": product["id"], "quantity": random.randint(1, 3)},
                timeout=5
            )
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id} ({self.city}): Added {product['name']} to cart")
                return True
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to add to cart - {response.status_code}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to add to cart - {e}")
        return False

    def remove_from_cart(self):
        if not self.products:
            return False
        product = random.choice(self.products)
        try:
            response = self.session.delete(f"{API_URL}/cart/item/{product['id']}", timeout=5)
            return response.status_code == 200
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to remove from cart - {e}")
        return False

    def view_cart(self):
        try:
            response = self.session.get(f"{API_URL}/cart", timeout=5)
            if response.status_code == 200:
                cart = self._data(response)
                log(f"Shopper {self.shopper_id} ({self.city}): Viewing cart with "
                    f"{len(cart['items'])} items, total {cart['cart_total']:.2f}")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to view cart - {e}")
        return False

    def place_order(self):
        try:
            response = self.session.post(
                f"{API_URL}/orders",
                json={"address": f"{random.randint(1, 200)} Main Street, {self.city}"},
                timeout=10
            )
            if response.status_code == 201:
                order = self._data(response)
                log(f"Shopper {self.shopper_id} ({self.city}): Order {order['id']} placed, "
                    f"total {order['order_price']:.2f}")
                return True
            log(f"Shopper {self.shopper_id} ({self.city}): Order failed - "
                f"{response.status_code} {response.json().get('message')}")
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Order failed - {e}")
        return False

    def view_orders(self):
        try:
            response = self.session.get(f"{API_URL}/orders", timeout=5)
            if response.status_code == 200:
                log(f"Shopper {self.shopper_id} ({self.city}): Viewing {len(self._data(response))} orders")
                return True
        except requests.RequestException as e:
            log(f"Shopper {self.shopper_id} ({self.city}): Failed to view orders - {e}")
        return False

    def random_action(self):
        action = random.choices(
            list(ACTION_WEIGHTS.keys()),
            weights=list(ACTION_WEIGHTS.values())
        )[0]
        return getattr(self, {
            "browse": "browse_products",
            "add_to_cart": "add_to_cart",
            "remove_from_cart": "remove_from_cart",
            "place_order": "place_order",
            "view_cart": "view_cart",
            "view_orders": "view_orders",
        }[action])()


def shopper_session(shopper_id, city, duration_seconds, buyer):
    """
    Simulate a shopper session

    Browsers only look at the catalog; buyers log in, fill a cart and order.
    """
    shopper = Shopper(shopper_id, city)
    end_time = time.time() + duration_seconds

    shopper.fetch_products()
    for _ in range(random.randint(2, 5)):
        shopper.browse_products()
        time.sleep(random.uniform(0.5, 1.5))

    if not buyer:
        while time.time() < end_time:
            shopper.browse_products()
            time.sleep(random.uniform(0.3, 0.8))
        return

    if not shopper.authenticate():
        return

    for _ in range(random.randint(1, 3)):
        shopper.add_to_cart()
        time.sleep(random.uniform(0.3, 0.8))

    while time.time() < end_time:
        shopper.random_action()
        time.sleep(random.uniform(0.5, 1.5))


def generate_traffic(num_concurrent_users=5, session_duration=60):
    """Generate traffic with multiple concurrent shoppers"""
    log(f"Starting traffic generation with {num_concurrent_users} concurrent shoppers")
    log(f"Session duration: {session_duration} seconds")

    threads = []
    city_index = 0

    try:
        while True:
            while len([t for t in threads if t.is_alive()]) < num_concurrent_users:
                city = CITIES[city_index % len(CITIES)]
                city_index += 1

                thread = threading.Thread(
                    target=shopper_session,
                    args=(f"shopper_{random.randint(1000, 9999)}", city, session_duration, random.random() < 0.5)
                )
                thread.start()
                threads.append(thread)

                time.sleep(random.uniform(1, 3))

            threads = [t for t in threads if t.is_alive()]
            time.sleep(5)

    except KeyboardInterrupt:
        log("\nStopping traffic generation...")
        for thread in threads:
            thread.join(timeout=10)
        log("Traffic generation stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate traffic for the storefront service")
    parser.add_argument("--users", type=int, default=5, help="Number of concurrent shoppers (default: 5)")
    parser.add_argument("--duration", type=int, default=60, help="Session duration in seconds (default: 60)")
    parser.add_argument("--url", type=str, default=API_URL, help=f"API base URL (default: {API_URL})")

    args = parser.parse_args()
    API_URL = args.url

    log("=" * 60)
    log("Storefront Traffic Generator")
    log("=" * 60)
    log(f"API URL: {API_URL}")
    log(f"Concurrent Shoppers: {args.users}")
    log(f"Session Duration: {args.duration}s")
    log("=" * 60)

    generate_traffic(args.users, args.duration)
