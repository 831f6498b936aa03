"""Live endpoint audit for the Climate Dashboard API.

Hits every endpoint on the running stack and reports whether each returns
real data, empty data, or errors, and whether error paths answer with the
expected status codes.

Usage:
    python scripts/audit_endpoints.py [--base-url http://localhost:8000] [--country Brazil]
"""

from __future__ import annotations

import argparse
import sys

import httpx

PASS = "\033[92m[PASS]\033[0m"
WARN = "\033[93m[WARN]\033[0m"
FAIL = "\033[91m[FAIL]\033[0m"

_KPI_FIELDS = {
    "last_year_km2",
    "avg_recent5",
    "avg_prev5",
    "delta_pct_5y",
    "forecast_15y_total_km2",
}


def check_health(client: httpx.Client, root: str) -> bool:
    """Check basic API health."""
    try:
        r = client.get(f"{root}/health")
        if r.status_code == 200:
            print(f"  {PASS} /health                       status=ok")
            return True
    except httpx.HTTPError:
        pass
    print(f"  {FAIL} /health                       API not reachable")
    return False


def check_warehouse_connection(client: httpx.Client, base: str) -> bool:
    r = client.get(f"{base}/test-connection")
    data = r.json()
    if r.status_code != 200 or not data.get("success"):
        print(f"  {FAIL} /test-connection              {data.get('error', r.status_code)}")
        return False
    print(f"  {PASS} /test-connection              test_data={data.get('test_data')}")
    return True


def check_gee_connection(client: httpx.Client, base: str) -> bool:
    r = client.get(f"{base}/gee-test")
    data = r.json()
    if r.status_code != 200 or data.get("status") != "connected":
        print(f"  {FAIL} /gee-test                     {data.get('error', r.status_code)}")
        return False
    print(f"  {PASS} /gee-test                     status=connected")
    return True


def check_kpis(client: httpx.Client, base: str, country: str) -> bool:
    """Check the KPI endpoint returns every metric field."""
    r = client.get(f"{base}/kpis", params={"country": country})
    if r.status_code != 200:
        print(f"  {FAIL} /kpis                         HTTP {r.status_code}")
        return False
    data = r.json()
    missing = _KPI_FIELDS - set(data)
    if missing:
        print(f"  {FAIL} /kpis                         missing fields: {sorted(missing)}")
        return False
    if all(data[k] is None for k in _KPI_FIELDS):
        print(f"  {WARN} /kpis                         No data for {country}")
        return True
    delta = data["delta_pct_5y"]
    delta_text = "null" if delta is None else f"{delta:+.1%}"
    print(
        f"  {PASS} /kpis                         last_year={data['last_year_km2']} km²"
        f"  delta_5y={delta_text}"
    )
    return True


def check_timeseries(client: httpx.Client, base: str, country: str) -> bool:
    """Check ordering and that history and forecast columns never overlap."""
    r = client.get(f"{base}/timeseries", params={"country": country})
    if r.status_code != 200:
        print(f"  {FAIL} /timeseries                   HTTP {r.status_code}")
        return False
    rows = r.json().get("data", [])
    if not rows:
        print(f"  {WARN} /timeseries                   Empty series for {country}")
        return True
    dates = [row["ds"] for row in rows]
    if dates != sorted(dates):
        print(f"  {FAIL} /timeseries                   rows not ascending by ds")
        return False
    overlapping = sum(
        1 for row in rows if (row["loss_km2"] is None) == (row["loss_km2_pred"] is None)
    )
    if overlapping:
        print(
            f"  {FAIL} /timeseries                   "
            f"{overlapping} rows with both or neither of loss_km2 / loss_km2_pred"
        )
        return False
    forecast = sum(1 for row in rows if row["loss_km2_pred"] is not None)
    print(
        f"  {PASS} /timeseries                   "
        f"{len(rows) - forecast} history + {forecast} forecast points"
    )
    return True


def check_forest_loss(client: httpx.Client, base: str, country: str) -> bool:
    """Check the Earth Engine report, with cover data."""
    r = client.get(
        f"{base}/forest-loss",
        params={"country": country, "startYear": 2015, "endYear": 2023, "includeCover": "true"},
        timeout=300.0,
    )
    if r.status_code != 200:
        print(f"  {FAIL} /forest-loss                  HTTP {r.status_code}  {r.json().get('error')}")
        return False
    data = r.json()["data"]
    loss = data["forest_loss"]
    years = [y["year"] for y in loss["yearly_data"]]
    if years != sorted(years):
        print(f"  {FAIL} /forest-loss                  yearly_data not sorted by year")
        return False
    if data["forest_cover"] is None:
        print(
            f"  {WARN} /forest-loss                  "
            f"total={loss['total_loss_km2']:.1f} km², forest cover unavailable"
        )
        return True
    print(
        f"  {PASS} /forest-loss                  total={loss['total_loss_km2']:.1f} km²"
        f"  years={len(years)}  cover_2000={data['forest_cover']['forest_cover_2000_km2']:.0f} km²"
    )
    return True


def check_error_paths(client: httpx.Client, base: str) -> bool:
    """Invalid input must be rejected with the documented status codes."""
    ok = True
    r = client.get(
        f"{base}/forest-loss", params={"country": "Brazil", "startYear": 2000, "endYear": 2010}
    )
    if r.status_code == 400 and r.json().get("error") == "Invalid year range":
        print(f"  {PASS} /forest-loss (2000-2010)      400 Invalid year range")
    else:
        print(f"  {FAIL} /forest-loss (2000-2010)      expected 400, got {r.status_code}")
        ok = False

    r = client.get(f"{base}/forest-loss", params={"country": "Atlantis"}, timeout=300.0)
    if r.status_code == 404 and r.json().get("error") == "Country not found":
        print(f"  {PASS} /forest-loss (Atlantis)       404 Country not found")
    else:
        print(f"  {FAIL} /forest-loss (Atlantis)       expected 404, got {r.status_code}")
        ok = False
    return ok


def main() -> None:
    parser = argparse.ArgumentParser(description="Climate Dashboard API Audit")
    parser.add_argument("--base-url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--country", default="Brazil", help="Country name (default: Brazil)")
    args = parser.parse_args()

    root = args.base_url.rstrip("/")
    base = f"{root}/api"

    print(f"\n{'=' * 55}")
    print("  Climate Dashboard API Audit")
    print(f"  Country: {args.country} | Base URL: {args.base_url}")
    print(f"{'=' * 55}\n")

    has_failure = False
    with httpx.Client(timeout=60.0) as client:
        if not check_health(client, root):
            print("\n  API not reachable, aborting audit.\n")
            sys.exit(1)

        checks = [
            check_warehouse_connection(client, base),
            check_gee_connection(client, base),
            check_kpis(client, base, args.country),
            check_timeseries(client, base, args.country),
            check_forest_loss(client, base, args.country),
            check_error_paths(client, base),
        ]
        has_failure = not all(checks)

    print(f"\n{'=' * 55}")
    if has_failure:
        print("  Result: ISSUES FOUND (see FAIL items above)")
    else:
        print("  Result: ALL CHECKS PASSED")
    print(f"{'=' * 55}\n")

    sys.exit(1 if has_failure else 0)


if __name__ == "__main__":
    main()
