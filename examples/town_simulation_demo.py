"""
Example running a small world: founding towns, tourist traffic, reward
claims and a few simulated days of production and research.
"""

from py_townsim.config import Settings
from py_townsim.core import ClaimDestination, TownManager, calculate_priorities
from py_townsim.db import InMemoryTownPersistence
from py_townsim.registry import ContentRegistry
from py_townsim.utils.logging import configure_logging
from py_townsim.utils.random import set_random_seed


def main():
    set_random_seed(2024)

    # Short days so research completes quickly
    settings = Settings(daily_tick_interval=200, research_check_interval=20)
    configure_logging(level="WARNING", fmt=settings.log_format)
    content = ContentRegistry.default()
    manager = TownManager(
        settings=settings,
        content=content,
        persistence=InMemoryTownPersistence(),
    )

    # Found towns
    print("Founding towns...")
    ids = {}
    for name, pos in [("Riverside", (0, 64, 0)), ("Hilltop", (40, 80, 10)), ("Too Close", (6, 64, 0))]:
        result = manager.register_town(pos, name)
        if result.success:
            ids[name] = result.value
            print(f"  {name}: founded at {pos}")
        else:
            print(f"  {name}: rejected ({result.error.message})")

    riverside = manager.get_town(ids["Riverside"])
    riverside.add_resource("food", 40)
    riverside.add_resource("wood", 60)

    # Tourist traffic
    print("\nTourists arriving at Riverside...")
    for _ in range(5):
        manager.process_tourist_arrival(ids["Riverside"], 7, origin_town_id=ids["Hilltop"])
    print(f"  Population: {riverside.get_population()}")
    print(f"  Counter carried forward: {riverside.tourists_received_counter}")

    # Claim rewards into the buffer, then move emeralds into the economy
    board = riverside.payment_board
    for entry in board.get_unclaimed_rewards():
        board.claim(entry.id, "player-1", ClaimDestination.BUFFER)
    emeralds = board.get_buffer_count("minecraft:emerald")
    if board.remove_from_buffer("minecraft:emerald", emeralds):
        riverside.add_resource("money", emeralds)
    print(f"  Claimed {emeralds} emeralds from the payment board")

    # Simulate
    days = 4
    print(f"\nSimulating {days} days...")
    for _ in range(days * settings.daily_tick_interval):
        manager.tick()

    print(f"  Unlocked: {sorted(riverside.upgrades.get_unlocked_nodes())}")
    print(f"  Researching: {riverside.upgrades.current_research}")
    print(f"  Resources: {riverside.get_all_resources()}")

    print("\nResearch priorities (un-biased):")
    priorities = calculate_priorities(
        riverside.snapshot(), riverside.upgrades.get_unlocked_nodes(), content, riverside.upgrades.levels
    )
    for node_id, score in sorted(priorities.items(), key=lambda kv: -kv[1]):
        print(f"  {node_id:20s} {score:6.2f}")

    manager.save_towns()
    print(f"\nStatistics: {manager.get_statistics().model_dump()}")


if __name__ == "__main__":
    main()
