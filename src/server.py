"""Protean Engine runner for the delivery domain.

Starts Engine workers that process events asynchronously:
- OutboxProcessor: polls outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and event
  handlers (including the OrderCancelled handler fed by Ordering)

Usage:
    python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


async def run():
    from delivery.domain import delivery

    delivery.init()
    await Engine(delivery).run()


def main():
    argparse.ArgumentParser(description="Delivery Engine runner").parse_args()
    asyncio.run(run())


if __name__ == "__main__":
    main()
