"""
Utterance Load Simulation

Fires concurrent Swiss German utterances at /voice/process to exercise the
interpreter, the dispatcher and the result cache under load.
Run from project root against a running server: python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_UTTERANCES = 50

UTTERANCES = [
    "Ich möchte zwei Pizza Margherita",
    "Ich hätte gern es Rösti",
    "Was kostet die Pizza Margherita?",
    "Hät de Burger Allergene?",
    "Zeig mir de Warenkorb",
    "Zeig mir das Menü",
    "Ich möchte bezahlen",
    "Nochmal",
    "Hilfe",
    "xyz qqq",
]

PRODUCTS = [
    {"id": "pizza_margherita", "name": "Pizza Margherita", "price": 18.50, "category": "pizza",
     "allergens": ["gluten", "milk"]},
    {"id": "cheeseburger", "name": "Cheeseburger", "price": 16.00, "category": "burger",
     "allergens": ["gluten", "milk", "mustard"]},
    {"id": "rosti", "name": "Rösti", "price": 14.00, "category": "schweizer"},
    {"id": "rivella", "name": "Rivella", "price": 4.50, "category": "getränk"},
]

PAGES = [None, "/menu", "/cart", "/checkout"]
CITIES = ["Zurich", "Basel", "Geneva", "Bern"]


def generate_context(client_num: int) -> dict[str, Any]:
    """Random domain context for one simulated client."""
    cart_items = []
    if random.random() < 0.5:
        product = random.choice(PRODUCTS)
        quantity = random.randint(1, 3)
        cart_items.append({
            "product": product,
            "quantity": quantity,
            "price": round(product["price"] * quantity, 2),
        })

    return {
        "session_id": f"sim-client-{client_num}",
        "language": random.choice(["de-CH", "de-CH", "de-DE"]),
        "current_page": random.choice(PAGES),
        "products": PRODUCTS,
        "cart": {"items": cart_items},
        "location": {"city": random.choice(CITIES)},
    }


async def send_utterance(client: httpx.AsyncClient, num: int) -> dict[str, Any]:
    """Post one utterance to /voice/process."""
    text = random.choice(UTTERANCES)
    payload = {"text": text, "context": generate_context(num % 10)}
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/voice/process", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code != 200:
            return {"num": num, "text": text, "ok": False, "error": response.text[:100], "time": elapsed}

        data = response.json()
        result = data["result"]
        return {
            "num": num,
            "text": text,
            "ok": True,
            "intent": data["interpretation"]["intent"]["name"],
            "action": result["action"],
            "success": result["success"],
            "from_cache": result.get("from_cache", False),
            "code": result.get("code"),
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"num": num, "text": text, "ok": False, "error": str(e)[:100], "time": elapsed}


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_utterances: int = TOTAL_UTTERANCES) -> dict[str, Any]:
    """
    Send `num_utterances` concurrent requests and summarize the outcomes.
    """
    print("=" * 70)
    print("🎙️ VOICE LOAD SIMULATION")
    print("=" * 70)
    print(f"📋 Utterances: {num_utterances}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(*[send_utterance(client, i + 1) for i in range(num_utterances)])
    total_time = round(time.time() - start_time, 2)

    answered = [r for r in results if r["ok"]]
    failed = [r for r in results if not r["ok"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Answered: {len(answered)}/{num_utterances}")
    print(f"❌ Transport failures: {len(failed)}/{num_utterances}")
    print(f"⏱️  Total Time: {total_time}s")

    if answered:
        actions = Counter(r["action"] for r in answered)
        codes = Counter(r["code"] for r in answered if not r["success"])
        cached = sum(1 for r in answered if r["from_cache"])
        avg_time = round(sum(r["time"] for r in answered) / len(answered), 3)

        print("\n📈 Actions:")
        for action, count in actions.most_common():
            print(f"   {action}: {count}")
        if codes:
            print("\n⚠️  Error codes:")
            for code, count in codes.most_common():
                print(f"   {code}: {count}")
        print(f"\n💾 Served from cache: {cached}")
        print(f"   Average Response: {avg_time}s")

    if failed:
        print("\n⚠️  Failure details (showing first 5):")
        for f in failed[:5]:
            print(f"   #{f['num']} '{f['text']}': {f['error']}")

    print("=" * 70)
    return {"total": num_utterances, "answered": len(answered), "failed": len(failed), "results": results}


async def preflight() -> bool:
    """Health check and one interpretation before the load run."""
    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ Unreachable: {e}")
            return False
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Store: {data.get('store')}")

        print("\n2️⃣ Interpretation...")
        response = await client.post(
            f"{API_BASE_URL}/voice/interpret",
            json={"text": "Ich möchte zwei Pizza bestellen", "context": {"language": "de-CH"}},
        )
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Intent: {data['intent']['name']} ({data['confidence']:.2f})")
        print(f"   Entities: {[e['normalized_value'] for e in data['entities']]}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Voice load simulation")
    parser.add_argument("--utterances", type=int, default=TOTAL_UTTERANCES, help="Number of requests")
    parser.add_argument("--skip-preflight", action="store_true", help="Skip the preflight checks")
    args = parser.parse_args()

    if not args.skip_preflight and not asyncio.run(preflight()):
        print("\n❌ Preflight failed. Is the server running?")
        sys.exit(1)

    asyncio.run(run_simulation(num_utterances=args.utterances))
