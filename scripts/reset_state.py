"""Reset item and alert state in Redis (useful for testing)."""

import asyncio

from stocktrack.config import get_settings
from stocktrack.state.manager import StateManager


async def reset_store(label: str, redis_url: str) -> None:
    state_manager = StateManager(redis_url)
    await state_manager.connect()

    # In production, use SCAN to avoid blocking
    if state_manager.redis_client:
        await state_manager.redis_client.flushdb()

    await state_manager.disconnect()
    print(f"✓ {label} store cleared")


async def reset_all_state() -> None:
    """Clear the local store, and the remote one if configured."""
    settings = get_settings()

    print("\n⚠️  WARNING: This will delete ALL items and alerts!")
    response = input("Are you sure? (yes/no): ")

    if response.lower() != "yes":
        print("Cancelled.")
        return

    print("\nResetting state...")

    await reset_store("Local", settings.local_redis_url)
    if settings.remote_configured:
        await reset_store("Remote", settings.remote_redis_url)

    print()


if __name__ == "__main__":
    asyncio.run(reset_all_state())
