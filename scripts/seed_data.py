"""Seed sample household items into the local and remote stores."""

import asyncio
from datetime import datetime, timedelta, timezone

from stocktrack.config import get_settings
from stocktrack.models.item import Item
from stocktrack.state.base import ItemStore
from stocktrack.state.local_store import LocalItemStore
from stocktrack.state.manager import StateManager
from stocktrack.state.remote_store import RemoteItemStore
from stocktrack.utils.parsing import parse_consumption_rate


def sample_items() -> list[Item]:
    """Pantry and bathroom staples with a range of rates and stock levels."""
    now = datetime.now(timezone.utc)
    yesterday = now - timedelta(days=1)

    return [
        Item(
            id="coffee_beans",
            name="Coffee Beans (g)",
            quantity=900,
            consumption_rate=parse_consumption_rate("30 per day"),
            min_stock_level=200,
            reorder_quantity=1000,
            last_decremented=yesterday,
        ),
        Item(
            id="milk",
            name="Milk (cartons)",
            quantity=4,
            consumption_rate=parse_consumption_rate("1 per 2 days"),
            min_stock_level=2,
            reorder_quantity=6,
            last_decremented=yesterday,
        ),
        Item(
            id="toilet_paper",
            name="Toilet Paper (rolls)",
            quantity=24,
            consumption_rate=parse_consumption_rate("3 per week"),
            min_stock_level=6,
            reorder_quantity=24,
            last_decremented=now - timedelta(weeks=1),
        ),
        Item(
            id="dish_soap",
            name="Dish Soap (bottles)",
            quantity=3,
            consumption_rate=parse_consumption_rate({"amount": 1, "period": 1, "unit": "months"}),
            min_stock_level=1,
        ),
        Item(
            id="vitamins",
            name="Vitamin D (tablets)",
            quantity=12,
            consumption_rate=parse_consumption_rate("1 per day"),
            last_decremented=yesterday,
        ),
        Item(
            id="light_bulbs",
            name="Light Bulbs",
            quantity=5,
            min_stock_level=2,
        ),
    ]


async def seed_store(store: ItemStore, items: list[Item]) -> None:
    print(f"Seeding {store.name} store...")

    for item in items:
        await store.upsert(item)
        rate = item.consumption_rate.describe() if item.consumption_rate else "not consumed"
        print(f"  ✓ Added {item.display_name} (stock: {item.quantity}, {rate})")

    print(f"✓ {store.name.capitalize()} store seeded successfully\n")


async def main() -> None:
    """Seed every configured store."""
    settings = get_settings()
    items = sample_items()

    print("\n" + "=" * 50)
    print("  Seeding StockTrack Data")
    print("=" * 50 + "\n")

    local_state = StateManager(settings.local_redis_url)
    await local_state.connect()
    await seed_store(LocalItemStore(local_state), items)
    await local_state.disconnect()

    if settings.remote_configured:
        remote_state = StateManager(settings.remote_redis_url)
        await remote_state.connect()
        await seed_store(RemoteItemStore(remote_state), items)
        await remote_state.disconnect()
    else:
        print("Remote store not configured, skipped\n")

    print("=" * 50)
    print("  ✓ All data seeded successfully!")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    asyncio.run(main())
