#!/usr/bin/env python3
"""
Run zoning reports against real NYC lots and print them for manual review.

Calls the live geocoding and MapPLUTO services, either through a running
API server or by importing the orchestrators directly (in-memory store).

Usage:
    # Against a running API:
    python3 scripts/validate_real_lots.py --api http://localhost:8000

    # Direct import (no server needed):
    python3 scripts/validate_real_lots.py

    # Only some cases:
    python3 scripts/validate_real_lots.py --tests 1 4
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

# Add backend to path for direct import mode
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.join(os.path.dirname(SCRIPT_DIR), "backend")
sys.path.insert(0, BACKEND_DIR)

# ──────────────────────────────────────────────────────────────────
# TEST LOTS
# ──────────────────────────────────────────────────────────────────

TEST_CASES = [
    {
        "name": "R6B Contextual (Park Slope)",
        "addresses": ["555 Union St, Brooklyn, NY"],
        "verify": [
            "FAR 2.0 (R6B)",
            "Lot coverage reported with lot type assumption",
        ],
    },
    {
        "name": "R7A Brooklyn (East New York)",
        "addresses": ["352 Fountain Ave, Brooklyn, NY"],
        "verify": [
            "FAR 4.0 (R7A)",
            "DUF cap = buildable / 680",
        ],
    },
    {
        "name": "R6 Narrow Street (Brooklyn)",
        "addresses": ["1310 East 95th St, Brooklyn, NY"],
        "verify": [
            "Narrow street assumption recorded",
            "FAR 2.2 (R6 narrow)",
        ],
    },
    {
        "name": "Assemblage, same block (Park Slope)",
        "addresses": ["555 Union St, Brooklyn, NY", "557 Union St, Brooklyn, NY"],
        "verify": [
            "shared_district when both lots are R6B",
            "Combined lot area = sum of lot areas",
            "Zoning consistency high",
        ],
    },
    {
        "name": "Assemblage, historic district (Brooklyn Heights)",
        "addresses": [
            "100 Montague St, Brooklyn, NY",
            "102 Montague St, Brooklyn, NY",
            "104 Montague St, Brooklyn, NY",
        ],
        "verify": [
            "Contamination risk moderate or high",
            "Contamination flag requires manual review",
        ],
    },
]


# ──────────────────────────────────────────────────────────────────
# DIRECT MODE (no server needed)
# ──────────────────────────────────────────────────────────────────

async def run_direct(addresses: list[str], store) -> dict:
    """Run the orchestrators in-process with the real providers."""
    from app.orchestration import generate_assemblage_report, generate_report
    from app.providers import get_default_providers

    providers = get_default_providers()
    if len(addresses) == 1:
        outcome = await generate_report(
            addresses[0], "validation", "validation", store=store, providers=providers,
        )
    else:
        outcome = await generate_assemblage_report(
            addresses, "validation", "validation", store=store, providers=providers,
        )

    results = await store.get_results(outcome.report_id)
    return {
        "outcome": outcome.to_dict(),
        "results": [r.model_dump(mode="json") for r in results],
    }


# ──────────────────────────────────────────────────────────────────
# API MODE
# ──────────────────────────────────────────────────────────────────

async def run_api(addresses: list[str], api_base: str) -> dict:
    """Run the report via the HTTP API, then fetch its records."""
    import httpx

    body = {"organization_id": "validation", "user_id": "validation"}
    if len(addresses) == 1:
        path = "/api/v1/reports/generate"
        body["address"] = addresses[0]
    else:
        path = "/api/v1/assemblage-reports/generate"
        body["addresses"] = addresses

    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(f"{api_base}{path}", json=body)
        if resp.status_code != 200:
            return {"error": f"API returned {resp.status_code}: {resp.text[:500]}"}
        outcome = resp.json()

        resp = await client.get(f"{api_base}/api/v1/reports/{outcome['report_id']}")
        if resp.status_code != 200:
            return {"error": f"API returned {resp.status_code}: {resp.text[:500]}"}
        return {"outcome": outcome, "results": resp.json()["results"]}


# ──────────────────────────────────────────────────────────────────
# OUTPUT FORMATTING
# ──────────────────────────────────────────────────────────────────

def _fmt_area(value) -> str:
    return f"{value:,.0f} SF" if isinstance(value, (int, float)) else "N/A"


def _format_single(lines: list[str], outcome: dict, results: list[dict]) -> None:
    lines.append(f"  BBL:      {outcome.get('bbl') or 'N/A'}")
    lines.append(f"  Address:  {outcome.get('normalized_address') or 'N/A'}")

    zoning = next(
        (r for r in results if r["source_key"] == "zoning_resolution"), None,
    )
    if zoning is None:
        return
    if zoning["status"] != "succeeded":
        lines.append(f"  ZONING:   failed ({zoning.get('error')})")
        return

    data = zoning["data"]
    derived = data.get("derived") or {}
    density = data.get("density") or {}
    lines.append(f"\n  ZONING:")
    lines.append(f"    District:   {data.get('district')} ({data.get('far_method')})")
    lines.append(f"    Max FAR:    {data.get('max_far')}")
    lines.append(f"    Lot Cov:    {data.get('max_lot_coverage')}")
    lines.append(f"    Buildable:  {_fmt_area(derived.get('max_buildable_floor_area_sqft'))}")
    envelope = (data.get("height") or {}).get("envelope") or {}
    lines.append(f"    Max height: {envelope.get('max_building_height_ft')} ft ({envelope.get('kind')})")
    lines.append(f"    DUF cap:    {density.get('max_dwelling_units')}")
    lines.append(f"    Review:     {data.get('requires_manual_review')}")
    for note in data.get("assumptions", []):
        lines.append(f"    - {note}")


def _format_assemblage(lines: list[str], outcome: dict) -> None:
    for lot in outcome.get("lots", []):
        lines.append(
            f"  Lot {lot['child_index'] + 1}:    {lot.get('bbl')}  {lot.get('zonedist1')}  "
            f"{_fmt_area(lot.get('lotarea'))}  FAR {lot.get('max_far')}  [{lot.get('status')}]"
        )

    lines.append(f"\n  AGGREGATION:")
    lines.append(f"    Combined:   {_fmt_area(outcome.get('combined_lot_area_sqft'))}")
    lines.append(f"    Buildable:  {_fmt_area(outcome.get('total_buildable_sqft'))}")
    lines.append(f"    FAR method: {outcome.get('far_method')}")
    lines.append(f"    Flags:      {outcome.get('flags')}")

    density = outcome.get("density")
    if density:
        default = next(
            c for c in density["candidates"] if c["id"] == density["default_candidate_id"]
        )
        lines.append(
            f"    DUF cap:    {default.get('max_dwelling_units')} ({default.get('method_used')})"
        )

    consistency = (outcome.get("zoning_consistency") or {}).get("summary")
    if consistency:
        lines.append(f"\n  CONSISTENCY:  {consistency['confidence']}")
    contamination = (outcome.get("contamination_risk") or {}).get("summary")
    if contamination:
        lines.append(
            f"  RISK:         {contamination['contamination_risk']} "
            f"(confidence {contamination['confidence']})"
        )

    lines.append(f"\n  MANUAL REVIEW:")
    lines.append(f"    Aggregation:   {outcome.get('requires_manual_review')}")
    if density:
        lines.append(f"    Density:       {density['flags'].get('requires_manual_review')}")
    if consistency:
        lines.append(f"    Consistency:   {consistency['requires_manual_review']}")
    if contamination:
        lines.append(f"    Contamination: {contamination['requires_manual_review']}")


def format_result(test: dict, result: dict) -> str:
    """Format a single test result for console output."""
    lines = []
    lines.append(f"\n{'='*70}")
    lines.append(f"TEST: {test['name']}")
    lines.append(f"{'='*70}")

    if "error" in result:
        lines.append(f"  ERROR: {result['error']}")
        return "\n".join(lines)

    outcome = result["outcome"]
    results = result.get("results", [])
    lines.append(f"  Report:   {outcome['report_id']} ({outcome['status']})")
    if outcome.get("error"):
        lines.append(f"  Error:    {outcome['error']}")

    if len(test["addresses"]) == 1:
        _format_single(lines, outcome, results)
    else:
        _format_assemblage(lines, outcome)

    failed = [r for r in results if r["status"] == "failed"]
    if failed:
        lines.append(f"\n  FAILED RECORDS:")
        for r in failed:
            lines.append(f"    #{r['sequence']} {r['source_key']}: {r.get('error')}")

    lines.append(f"\n  VERIFY:")
    for v in test.get("verify", []):
        lines.append(f"    [ ] {v}")

    return "\n".join(lines)


# ──────────────────────────────────────────────────────────────────
# MAIN
# ──────────────────────────────────────────────────────────────────

async def main():
    parser = argparse.ArgumentParser(description="Run zoning reports against real NYC lots")
    parser.add_argument("--api", default=None, help="API base URL (e.g., http://localhost:8000)")
    parser.add_argument("--tests", nargs="*", type=int, help="Run specific test numbers (1-indexed)")
    parser.add_argument("--verbose", action="store_true", help="Log provider calls")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    print(f"\nNYC Zoning Report Validation")
    print(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    print(f"Mode: {'API' if args.api else 'Direct Import'}")
    if args.api:
        print(f"API:  {args.api}")
    print(f"Tests: {len(TEST_CASES)} configured")

    tests_to_run = TEST_CASES
    if args.tests:
        tests_to_run = [TEST_CASES[i-1] for i in args.tests if 1 <= i <= len(TEST_CASES)]

    store = None
    if not args.api:
        from app.services.report_store import InMemoryResultStore
        store = InMemoryResultStore()

    results = []
    for i, test in enumerate(tests_to_run, 1):
        print(f"\n>>> Running test {i}/{len(tests_to_run)}: {test['name']}...")
        try:
            if args.api:
                result = await run_api(test["addresses"], args.api)
            else:
                result = await run_direct(test["addresses"], store)
            print(format_result(test, result))
            status = "error" if "error" in result else result["outcome"]["status"]
            results.append({"test": test["name"], "status": status})
        except Exception as e:
            logging.getLogger(__name__).exception("Test %r crashed", test["name"])
            results.append({"test": test["name"], "status": "error", "error": str(e)})

    print(f"\n{'='*70}")
    print("SUMMARY")
    print(f"{'='*70}")
    ready = sum(1 for r in results if r["status"] == "ready")
    print(f"  Ready:  {ready}/{len(results)}")
    for r in results:
        if r["status"] != "ready":
            print(f"    - {r['test']}: {r['status']} {r.get('error', '')}".rstrip())
    print()


if __name__ == "__main__":
    asyncio.run(main())
