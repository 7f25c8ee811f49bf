#!/usr/bin/env python3
"""
Seed script — builds a small favorites graph and triggers notification fan-out.

Creates:
  • 10 users
  • Author favorites (each user favorites 2-4 others as authors)
  • A few post bookmarks (post favorites; these never notify anyone)
  • 3 posts per user (30 total), each one publishing a PostPublished event

Run after docker compose up (API, fanout worker and notifier worker):
  python scripts/seed_data.py --api-url http://localhost:8000
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass


BASE_USERS = [
    ("Alice Chen", "alice@example.com"),
    ("Bob Martinez", "bob@example.com"),
    ("Carol Singh", "carol@example.com"),
    ("Dave Kim", "dave@example.com"),
    ("Eve Johnson", "eve@example.com"),
    ("Frank Williams", "frank@example.com"),
    ("Grace Li", "grace@example.com"),
    ("Henry Brown", "henry@example.com"),
    ("Iris Davis", "iris@example.com"),
    ("Jack Wilson", "jack@example.com"),
]

SAMPLE_POSTS = [
    ("Zero downtime deploys", "Rolling updates, health checks and a lot of patience."),
    ("Keyset pagination", "OFFSET gets slower with every page. WHERE id > :last does not."),
    ("Redis sorted sets", "O(log N) writes and cheap range reads make a good inbox."),
    ("Kafka consumer groups", "Partitions are the unit of parallelism. Plan them early."),
    ("Fan-out on write", "Pay at publish time so reads stay cheap."),
    ("Idempotent consumers", "At-least-once delivery means every handler runs twice eventually."),
    ("Tracing all the things", "OpenTelemetry spans from the API down to the notifier."),
    ("Batch cancellation", "Stopping a fan-out halfway is a feature, not an accident."),
    ("TiDB in production", "Distributed SQL without changing the dialect."),
    ("Prometheus first", "Dashboards before features, every time."),
]


@dataclass
class ApiClient:
    base_url: str

    def _send(self, method: str, path: str, data: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(
            url, data=body, headers={"Content-Type": "application/json"}, method=method
        )
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def post(self, path: str, data: dict) -> dict:
        return self._send("POST", path, data)

    def get(self, path: str) -> dict:
        return self._send("GET", path)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            if client.get("/health").get("status") == "ok":
                print("  API is ready!\n")
                return
        except OSError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Users ─────────────────────────────────────────────────────────────
    print("Creating users...")
    user_ids: list[int] = []
    for name, email in BASE_USERS:
        uid = client.post("/users/", {"name": name, "email": email}).get("id")
        if uid:
            user_ids.append(uid)
            print(f"  ✓ {name} ({uid})")
        else:
            print(f"  ✗ Failed to create {name}")

    if len(user_ids) < 2:
        print("Not enough users created — aborting")
        return

    # ── Author favorites ──────────────────────────────────────────────────
    print("\nFavoriting authors...")
    edges = 0
    for user_id in user_ids:
        others = [u for u in user_ids if u != user_id]
        for author_id in random.sample(others, k=min(random.randint(2, 4), len(others))):
            client.post(f"/favorites/users/{author_id}", {"user_id": user_id})
            edges += 1
    print(f"  ✓ {edges} author favorites")

    # ── Posts (each one fans out to the author's followers) ──────────────
    print("\nPublishing posts...")
    post_ids: list[int] = []
    for i, user_id in enumerate(user_ids):
        for j in range(3):
            title, body = SAMPLE_POSTS[(i + j) % len(SAMPLE_POSTS)]
            pid = client.post("/posts/", {"user_id": user_id, "title": title, "body": body}).get("id")
            if pid:
                post_ids.append(pid)
    print(f"  ✓ {len(post_ids)} posts published")

    # ── Post bookmarks ────────────────────────────────────────────────────
    print("\nBookmarking posts...")
    bookmarks = 0
    for post_id in random.sample(post_ids, k=min(10, len(post_ids))):
        client.post(f"/favorites/posts/{post_id}", {"user_id": random.choice(user_ids)})
        bookmarks += 1
    print(f"  ✓ {bookmarks} post favorites")

    # ── Summary ───────────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    u = user_ids[0]
    print(f"# Favorites of '{BASE_USERS[0][0]}':")
    print(f"  curl -s '{api_url}/favorites/?user_id={u}' | python3 -m json.tool\n")
    print(f"# Their notification inbox (filled by the notifier worker):")
    print(f"  curl -s '{api_url}/users/{u}/notifications' | python3 -m json.tool\n")
    print("# Batch ids appear in the fanout worker logs:")
    print(f"  curl -s '{api_url}/batches/<batch_id>' | python3 -m json.tool")
    print(f"  curl -s -X POST '{api_url}/batches/<batch_id>/cancel'\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print("# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the favfeed system")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
