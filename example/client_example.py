from x402_checkout.clients.http_client import Http402Client
from x402_checkout.adapters.adapters_hub import AdapterHub
from x402_checkout.engine.events import PayingEvent
from x402_checkout.utils import setup_logger
import httpx

wpk = "0xxxx"  # Replace with a funded test wallet key

ah = AdapterHub(evm_private_key=wpk)


async def on_paying(event, deps):
    selected = event.context.selected
    print(f"💸 Paying {selected.amount} to {selected.pay_to} on {selected.network}")


async def main():
    async with Http402Client(
        adapter_hub=ah,
        retry_interval=2.0,
        max_verify_attempts=5,
        timeout=httpx.Timeout(60.0, read=120.0)
    ) as client:
        client.add_hook(PayingEvent, on_paying)
        return await client.access("http://localhost:8000/api/paid", deadline=600)


if __name__ == "__main__":
    import asyncio
    setup_logger("INFO")
    result = asyncio.run(main())
    print("State:", result.state.value)
    print("Response:", result.body if result.granted else result.error)
