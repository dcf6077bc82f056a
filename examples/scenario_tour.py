"""Walk a running generator through every scenario and watch latency react.

    nodepulse serve --port 8092
    python examples/scenario_tour.py ws://localhost:8092
"""

from __future__ import annotations

import asyncio
import sys

from nodepulse import ConnectionManager, EventBus, MetricStore, Mode


async def main(url: str, dwell: float = 3.0) -> None:
    bus = EventBus()
    store = MetricStore()
    store.attach(bus)
    opened = asyncio.Event()
    bus.on("open", lambda _: opened.set())

    async with ConnectionManager(url, bus) as conn:
        conn.connect()
        await asyncio.wait_for(opened.wait(), timeout=5.0)

        for mode in Mode:
            await conn.send({"mode": mode.value})
            await asyncio.sleep(dwell)
            aggregate = store.last_aggregate
            if aggregate is not None:
                print(
                    f"{mode.value:<11} latency={aggregate.latency_ms:6.1f}ms  "
                    f"throughput={aggregate.throughput:6.1f} Mbps"
                )

        await conn.send({"mode": Mode.NORMAL.value})


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8092"))
