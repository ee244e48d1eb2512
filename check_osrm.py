#!/usr/bin/env python3
"""Script to verify OSRM connectivity and the trip endpoint used by batch workers."""

import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from routeopt.config import settings
from routeopt.models.domain import Stop
from routeopt.services.routing.errors import CollaboratorError
from routeopt.services.routing.osrm_client import OSRMClient, check_health


def main():
    print("=" * 60)
    print("OSRM Connection Test")
    print("=" * 60)
    print()

    print("1. Checking OSRM configuration...")
    print(f"   [OK] OSRM Base URL: {settings.osrm_base_url}")
    print(f"   [OK] OSRM Profile: {settings.osrm_profile}")
    print()

    print("2. Testing OSRM health check...")
    if not check_health():
        print("   [ERROR] OSRM service is not responding")
        print("   Set ROUTEOPT_OSRM_BASE_URL in your .env file")
        return 1
    print("   [OK] OSRM service is healthy and accessible!")
    print()

    print("3. Testing OSRM trip optimization...")
    start = (52.517037, 13.388860)  # Berlin, Germany
    stops = [
        Stop(stop_id="1", latitude=52.496891, longitude=13.385983),
        Stop(stop_id="2", latitude=52.509663, longitude=13.376481),
        Stop(stop_id="3", latitude=52.520008, longitude=13.404954),
    ]
    try:
        plan = OSRMClient().optimize(start, stops)
    except CollaboratorError as e:
        print(f"   [ERROR] Trip request failed: {e}")
        return 1
    print(f"   [OK] Visiting order: {plan.stop_ids}")
    print(f"   [OK] Distance: {plan.distance_km:.3f} km")
    print(f"   [OK] Geometry points: {len(plan.geometry or [])}")
    print(f"   [OK] Stop ranges: {plan.stop_ranges}")
    print()

    print("=" * 60)
    print("[SUCCESS] OSRM is connected and working!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
