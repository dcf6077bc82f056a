"""Stream telemetry into a MetricStore and print the fleet average.

Start a generator first, then point this script at it:

    nodepulse serve --port 8092
    python examples/store_consumer.py ws://localhost:8092
"""

from __future__ import annotations

import asyncio
import sys

from nodepulse import ConnectionManager, EventBus, MetricStore


async def main(url: str, seconds: float = 10.0) -> None:
    bus = EventBus()
    store = MetricStore()
    store.attach(bus)
    bus.on("nodes", lambda nodes: print(f"nodes: {', '.join(nodes)}"))

    async with ConnectionManager(url, bus) as conn:
        conn.connect()
        for _ in range(int(seconds)):
            await asyncio.sleep(1.0)
            aggregate = store.last_aggregate
            if aggregate is None:
                print("waiting for data...")
                continue
            print(
                f"ALL  throughput={aggregate.throughput:7.1f} Mbps  "
                f"latency={aggregate.latency_ms:6.1f}ms  "
                f"alerts={aggregate.alert_rate * 100:5.2f}%"
            )

    for node in store.nodes:
        stats = store.node_stats(node)
        if stats is not None:
            print(f"{node:<10} n={stats.count:<4} p95 latency={stats.latency_p95:.1f}ms")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8092"))
