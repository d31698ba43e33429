"""
Dining Room Simulation Script

Simulates a busy dining room: many diners fill carts and check out at
once while a kitchen worker keeps advancing orders on the staff board.
Run from project root: python scripts/simulate.py --merchant <id>

Seed a merchant first (python scripts/seed.py) when using the SQL backend.
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_DINERS = 30

MENU_ITEMS = [
    {"item_id": "margherita", "name": "Pizza Margherita", "unit_price": 14.99},
    {"item_id": "pepperoni", "name": "Pepperoni Pizza", "unit_price": 16.99},
    {"item_id": "caesar", "name": "Caesar Salad", "unit_price": 8.99},
    {"item_id": "garlic-bread", "name": "Garlic Bread", "unit_price": 5.99},
    {"item_id": "carbonara", "name": "Pasta Carbonara", "unit_price": 13.99},
    {"item_id": "tiramisu", "name": "Tiramisu", "unit_price": 7.99},
    {"item_id": "cola", "name": "Coke", "unit_price": 2.99},
]


# =============================================================================
# DINERS
# =============================================================================

async def dine(
    client: httpx.AsyncClient,
    merchant_id: str,
    tables: list[str],
    diner_num: int,
) -> dict[str, Any]:
    """Fill a cart, maybe change our mind once, then check out."""
    headers = {"X-Session-Id": f"sim-{uuid.uuid4()}"}
    cart_url = f"{API_BASE_URL}/api/merchants/{merchant_id}/cart"
    start_time = time.time()

    try:
        for _ in range(random.randint(1, 5)):
            item = random.choice(MENU_ITEMS)
            await client.post(f"{cart_url}/items", json=item, headers=headers)
        if random.random() < 0.3:
            item = random.choice(MENU_ITEMS)
            await client.delete(f"{cart_url}/items/{item['item_id']}", headers=headers)

        response = await client.post(
            f"{API_BASE_URL}/api/merchants/{merchant_id}/checkout",
            json={"table_label": random.choice(tables)},
            headers=headers,
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "diner": diner_num,
                "success": True,
                "order_id": data["id"],
                "total": data["total_price"],
                "time": elapsed,
            }
        return {
            "diner": diner_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "diner": diner_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


# =============================================================================
# KITCHEN
# =============================================================================

async def kitchen(client: httpx.AsyncClient, merchant_id: str, stop: asyncio.Event) -> dict[str, int]:
    """Advance random open orders until the diners are done."""
    stats = {"advanced": 0, "failed": 0}
    board_url = f"{API_BASE_URL}/api/merchants/{merchant_id}/orders"

    while not stop.is_set():
        try:
            snapshot = (await client.get(board_url)).json()
            open_orders = [o for o in snapshot["orders"] if o["status"] != "paid"]
            if open_orders:
                order = random.choice(open_orders)
                response = await client.post(f"{board_url}/{order['id']}/advance")
                stats["advanced" if response.status_code == 200 else "failed"] += 1
        except httpx.HTTPError:
            stats["failed"] += 1
        await asyncio.sleep(0.05)

    return stats


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(merchant_id: str, num_diners: int = TOTAL_DINERS) -> dict[str, Any]:
    print("=" * 70)
    print("DINING ROOM SIMULATION")
    print("=" * 70)
    print(f"Diners: {num_diners}")
    print(f"Merchant: {merchant_id}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        tables = [
            t["label"]
            for t in (await client.get(f"{API_BASE_URL}/api/merchants/{merchant_id}/tables")).json()
        ] or ["1"]

        stop = asyncio.Event()
        kitchen_task = asyncio.create_task(kitchen(client, merchant_id, stop))

        start_time = time.time()
        results = await asyncio.gather(*[
            dine(client, merchant_id, tables, i + 1) for i in range(num_diners)
        ])
        total_time = round(time.time() - start_time, 2)

        stop.set()
        kitchen_stats = await kitchen_task

        snapshot = (await client.get(f"{API_BASE_URL}/api/merchants/{merchant_id}/orders")).json()

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful checkouts: {len(successful)}/{num_diners}")
    print(f"Failed checkouts: {len(failed)}/{num_diners}")
    print(f"Total time: {total_time}s")
    print(f"\nKitchen advanced {kitchen_stats['advanced']} order(s), {kitchen_stats['failed']} failure(s)")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum(r["total"] for r in successful)
        print(f"Average diner session: {avg_time}s")
        print(f"Order value: ${revenue:.2f}")

    print("\nBoard now:")
    for status, orders in snapshot["columns"].items():
        print(f"   {status:<10} {len(orders)}")
    print(f"   active     {snapshot['active_count']}")

    if failed:
        print("\nFailed checkout details (showing first 5):")
        for f in failed[:5]:
            print(f"   Diner #{f['diner']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)
    return {
        "total": num_diners,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "kitchen": kitchen_stats,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dining Room Simulation Script")
    parser.add_argument("--merchant", required=True, help="Merchant id to order from")
    parser.add_argument("--diners", type=int, default=TOTAL_DINERS, help="Number of concurrent diners")
    args = parser.parse_args()

    try:
        asyncio.run(run_simulation(args.merchant, num_diners=args.diners))
    except httpx.ConnectError:
        print(f"\nCannot reach {API_BASE_URL}. Start the API first: uvicorn tableside.main:app --port 8001")
        sys.exit(1)
