import asyncio
import os
import time

from dotenv import load_dotenv

from fetchgate import Dispatcher, DispatcherSettings
from fetchgate.logging import setup_logging

load_dotenv()

BASE_URL = os.getenv(key="FETCHGATE_BASE_URL") or "https://httpbin.org/anything"
API_KEY = os.getenv(key="FETCHGATE_API_KEY")


def request_options() -> dict:
    return {"headers": {"x-apikey": API_KEY}} if API_KEY else {}


async def deduplication(dispatcher: Dispatcher) -> None:
    """Send the same URL three times; only one request goes out."""
    url = f"{BASE_URL}?deduplication-test=1"
    bodies = await asyncio.gather(
        *(dispatcher.request(url, request_options()) for _ in range(3))
    )
    print(f"Shared response object: {bodies[0] is bodies[1] is bodies[2]}")


async def queueing(dispatcher: Dispatcher) -> None:
    """Send 6 requests to one host; the last 3 wait for a free slot."""
    started = time.monotonic()

    async def timed(index: int) -> float:
        await dispatcher.request(f"{BASE_URL}?queue-test={index}", request_options())
        return time.monotonic() - started

    finished = await asyncio.gather(*(timed(index) for index in range(1, 7)))
    for index, seconds in enumerate(finished, start=1):
        print(f"Request {index} finished after {seconds * 1000:.0f} ms")


async def main() -> None:
    settings = DispatcherSettings.from_env()
    setup_logging(level=settings.log_level)
    async with Dispatcher.from_settings(settings) as dispatcher:
        await deduplication(dispatcher)
        await queueing(dispatcher)


if __name__ == "__main__":
    asyncio.run(main())
