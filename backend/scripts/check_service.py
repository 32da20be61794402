"""
Smoke-check a running webhook service: banner, health and configuration report.

Usage (from backend/):
  python -m scripts.check_service
  python -m scripts.check_service --base-url https://billing.example.com

Exits non-zero when the service is unreachable or a required setting is
missing (Stripe key, webhook secret unless unsigned mode is on, database,
product ids for every tier).
"""
import argparse
import json
import os
import sys

import requests

DEFAULT_BASE_URL = os.environ.get("SERVICE_URL", "http://localhost:8001")


def _get(session, url, timeout):
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        return None, str(e)
    if response.status_code != 200:
        return None, f"HTTP {response.status_code}"
    return response.json(), None


def config_problems(report):
    """Missing settings from a /api/config/check report."""
    problems = []
    if not report.get("stripeConfigured"):
        problems.append("STRIPE_SECRET_KEY not set")
    if not report.get("webhookSecretConfigured") and not report.get("unsignedWebhooksAllowed"):
        problems.append("STRIPE_WEBHOOK_SECRET not set")
    if not report.get("databaseConfigured"):
        problems.append("MONGO_URL / DB_NAME not set")
    for tier, ok in (report.get("productIdsConfigured") or {}).items():
        if not ok:
            problems.append(f"no Stripe product id for {tier} plan")
    return problems


def run_checks(base_url, session=requests, timeout=10.0):
    """Returns a list of (check name, ok, detail)."""
    base_url = base_url.rstrip("/")
    results = []

    banner, error = _get(session, f"{base_url}/", timeout)
    results.append(("service", banner is not None, error or banner.get("status")))

    health, error = _get(session, f"{base_url}/api/health", timeout)
    results.append(("health", health is not None, error or health.get("database")))

    report, error = _get(session, f"{base_url}/api/config/check", timeout)
    if report is None:
        results.append(("config", False, error))
    else:
        problems = config_problems(report)
        results.append(("config", not problems, "; ".join(problems) or report.get("environment")))

    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Smoke-check the Stripe webhook service")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--timeout", type=float, default=10.0)
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    args = parser.parse_args(argv)

    results = run_checks(args.base_url, timeout=args.timeout)
    if args.json:
        print(json.dumps([{"check": n, "ok": ok, "detail": d} for n, ok, d in results], indent=2))
    else:
        print(f"Checking {args.base_url}")
        for name, ok, detail in results:
            print(f"  [{'OK' if ok else 'FAIL'}] {name}: {detail}")

    return 0 if all(ok for _, ok, _ in results) else 1


if __name__ == "__main__":
    sys.exit(main())
