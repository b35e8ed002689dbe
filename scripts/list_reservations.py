"""Log in as the operator and print the admin reservation list as JSON."""

import argparse
import json
import os

import httpx


def main() -> None:
    """CLI entrypoint for a quick look at incoming reservations."""

    parser = argparse.ArgumentParser(description="Fetch reservations through the admin API.")
    parser.add_argument("--api-url", default="http://localhost:10000")
    parser.add_argument("--user", default=os.getenv("ADMIN_USER", ""))
    parser.add_argument("--password", default=os.getenv("ADMIN_PASS", ""))
    parser.add_argument("--status", choices=["pending", "paid"], default=None)
    args = parser.parse_args()

    with httpx.Client(base_url=args.api_url, timeout=10.0) as client:
        login = client.post("/api/admin/login", json={"user": args.user, "pass": args.password})
        login.raise_for_status()
        token = login.json()["token"]
        resp = client.get("/api/admin/reservations", headers={"Authorization": f"Bearer {token}"})
        resp.raise_for_status()

    reservations = resp.json()["reservations"]
    if args.status:
        reservations = [r for r in reservations if r["status"] == args.status]
    print(json.dumps(reservations, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
