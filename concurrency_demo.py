"""Simple concurrency demo that books the same trip concurrently against the ASGI app.
This runs in-process and doesn't require the server to be started separately.
Run: python concurrency_demo.py
"""
import asyncio
from main import app
from sample_data import seed
import httpx


async def run():
    seed()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        trip = (await client.get("/api/trips")).json()[0]
        users = [u for u in (await client.get("/api/users")).json() if u["id"] != trip["driverId"]]
        tasks = [client.post(f"/api/trips/{trip['id']}/book", json={"userId": u["id"], "seats": 1}) for u in users]
        res = await asyncio.gather(*tasks)
        for r in res:
            print(r.status_code, r.json().get("error") or r.json()["earnedCredits"])
        after = [t for t in (await client.get("/api/trips")).json() if t["id"] == trip["id"]][0]
        print(f"seats {trip['seatsAvailable']} -> {after['seatsAvailable']}, passengers {after['passengerIds']}")


if __name__ == "__main__":
    asyncio.run(run())
