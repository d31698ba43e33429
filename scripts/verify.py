"""
Board Verification Script

Verifies the consistency of a merchant's staff board after a simulation.
Run from project root: python scripts/verify.py --merchant <id>
"""

import argparse
import sys
from datetime import datetime

import httpx

API_BASE_URL = "http://localhost:8001"
BOARD_COLUMNS = ("pending", "preparing", "served")


def verify_board(merchant_id: str) -> bool:
    """Check the board snapshot for internal consistency."""
    print("=" * 60)
    print("BOARD VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Merchant: {merchant_id}")
    print("=" * 60)

    try:
        response = httpx.get(f"{API_BASE_URL}/api/merchants/{merchant_id}/orders", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"\nCould not load board: {e}")
        return False

    snapshot = response.json()
    orders = snapshot["orders"]
    issues = []

    # Newest first
    stamps = [o["created_at"] for o in orders]
    if stamps != sorted(stamps, reverse=True):
        issues.append("Orders are not sorted newest first")

    # Columns partition every non-paid order
    for status in BOARD_COLUMNS:
        expected = [o["id"] for o in orders if o["status"] == status]
        actual = [o["id"] for o in snapshot["columns"].get(status, [])]
        if expected != actual:
            issues.append(f"Column {status!r} does not match order statuses")

    active = sum(1 for o in orders if o["status"] in ("pending", "preparing"))
    if snapshot["active_count"] != active:
        issues.append(f"active_count {snapshot['active_count']} != {active}")

    for order in orders:
        if not order["lines"]:
            issues.append(f"Order {order['id']} has no lines")
            continue
        total = round(sum(l["quantity"] * l["unit_price"] for l in order["lines"]), 2)
        if abs(total - order["total_price"]) > 0.005:
            issues.append(f"Order {order['id']} total {order['total_price']} != lines {total}")

    print(f"\nOrders on board: {len(orders)}")
    for status in BOARD_COLUMNS:
        print(f"   {status:<10} {len(snapshot['columns'].get(status, []))}")
    print(f"   paid       {sum(1 for o in orders if o['status'] == 'paid')}")

    if issues:
        print(f"\n{len(issues)} issue(s) found:")
        for issue in issues[:20]:
            print(f"   - {issue}")
        return False

    print("\nBoard is consistent")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Board Verification Script")
    parser.add_argument("--merchant", required=True, help="Merchant id to verify")
    args = parser.parse_args()

    sys.exit(0 if verify_board(args.merchant) else 1)
