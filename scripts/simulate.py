"""
Order Load Simulation Script

Books a burst of random pasta orders concurrently, then reads the daily
report and triggers a backup so the whole flow is exercised end to end.
Run from project root: python scripts/simulate.py

Author: Khalil_Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import date, timedelta
from typing import Any, Optional

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

# Sample data for random orders
FIRST_NAMES = ["Maria", "Giovanni", "Francesca", "Luca", "Giulia", "Marco", "Anna", "Paolo", "Sara", "Andrea"]
LAST_NAMES = ["Rossi", "Melis", "Pinna", "Serra", "Piras", "Murgia", "Sanna", "Deiana", "Cocco", "Porcu"]
PICKUP_TIMES = ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30", "12:00", "17:00", "17:30", "18:00"]
PRODUCTS = [
    {"product": "Culurgiones", "category": "pasta", "unit": "kg", "price": 15.0},
    {"product": "Ravioli", "category": "pasta", "unit": "kg", "price": 14.0},
    {"product": "Malloreddus", "category": "pasta", "unit": "kg", "price": 8.0},
    {"product": "Fregola", "category": "pasta", "unit": "kg", "price": 7.5},
    {"product": "Seadas", "category": "dolci", "unit": "pieces", "price": 3.5},
    {"product": "Pardulas", "category": "dolci", "unit": "kg", "price": 22.0},
    {"product": "Panadas di agnello", "category": "panadas", "unit": "unit", "price": 6.0},
]


def generate_order_payload() -> dict[str, Any]:
    """Random order picked up within the next week."""
    items = []
    for product in random.sample(PRODUCTS, random.randint(1, 3)):
        line = dict(product)
        line["quantity"] = random.choice([0.5, 1, 1.5, 2, 3])
        items.append(line)

    return {
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "phone": f"+39 3{random.randint(10, 99)} {random.randint(100000, 999999)}",
        "pickup_date": (date.today() + timedelta(days=random.randint(0, 6))).isoformat(),
        "pickup_time": random.choice(PICKUP_TIMES),
        "takeaway": random.random() < 0.3,
        "notes": random.choice([None, "Senza glutine", "Confezione regalo", "Chiamare all'arrivo"]),
        "items": items,
    }


async def send_order(
    client: httpx.AsyncClient,
    order_num: int
) -> dict[str, Any]:
    """Book one order via the API."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(),
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("id"),
                "total": data.get("total"),
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    admin_token: Optional[str] = None,
    backup: bool = True,
) -> dict[str, Any]:
    print("=" * 70)
    print("ORDER LOAD SIMULATION")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print("=" * 70)

    start_time = time.time()
    headers = {"X-Admin-Token": admin_token} if admin_token else {}

    async with httpx.AsyncClient(headers=headers) as client:
        results = await asyncio.gather(*[send_order(client, i + 1) for i in range(num_orders)])
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print(f"\nSuccessful Orders: {len(successful)}/{num_orders}")
        print(f"Failed Orders: {len(failed)}/{num_orders}")
        print(f"Total Time: {total_time}s")

        if successful:
            avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
            total_revenue = sum(r.get("total") or 0 for r in successful)
            print(f"   Average Response: {avg_time}s")
            print(f"   Booked Revenue: {total_revenue:.2f}")

        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

        response = await client.get(f"{API_BASE_URL}/api/reports/daily")
        if response.status_code == 200:
            print(f"\nToday's report: {response.json()['data']}")
        else:
            print(f"\nDaily report failed: {response.text[:100]}")

        if backup:
            response = await client.post(
                f"{API_BASE_URL}/api/backup",
                json={"type": "full", "compress": True},
                timeout=60.0,
            )
            if response.status_code == 200:
                print(f"Backup: {response.json()['message']}")
            else:
                print(f"Backup failed: {response.text[:100]}")

    print("\nNext: python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Load Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--token", default=os.getenv("ADMIN_API_TOKEN"), help="Admin API token")
    parser.add_argument("--no-backup", action="store_true", help="Skip the backup step")
    args = parser.parse_args()

    asyncio.run(run_simulation(args.orders, admin_token=args.token, backup=not args.no_backup))
