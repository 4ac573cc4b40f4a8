import secrets

from x402_checkout.servers import Http402Server
from x402_checkout.engine.events import AccessGrantedEvent, VerifyFailedEvent
from x402_checkout.utils import setup_logger


setup_logger("DEBUG")

app = Http402Server(title="x402 Checkout API")

BASE_SEPOLIA_USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


async def create_pay_to_address(resource: str) -> str:
    """Issue a deposit address per purchase; replace with your payment provider."""
    return "0x" + secrets.token_hex(20)


# Configure payment methods; clients pay the first one
app.add_payment_method({
    "scheme": "exact",
    "network": "eip155:84532",
    "asset": BASE_SEPOLIA_USDC,
    "amount": "500000",
    "price": "$0.50",
    "description": "Buy conceptual good (x402)",
    "mimeType": "application/json",
}, pay_to=create_pay_to_address)


# Optional: Add event hooks for custom logic
@app.hook(AccessGrantedEvent)
async def on_granted(event, deps):
    print(f"✅ Paid: {event.receipt.transaction} by {event.receipt.payer}")


@app.hook(VerifyFailedEvent)
async def on_verify_failed(event, deps):
    print(f"⏳ Not accepted yet: {event.status.value}")


@app.get("/api/paid")
@app.payment_required
async def get_paid(proof):
    """This endpoint requires payment to access."""
    return {
        "ok": True,
        "delivered": "your conceptual good payload here",
        "transaction": proof.transaction_hash,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="debug")
