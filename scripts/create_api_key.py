#!/usr/bin/env python3
"""
Create a Pulse Project and API Key

Calls POST /admin/projects on a running trace service and prints the new key.

Usage:
    ADMIN_KEY=dev-admin-key \
    TRACE_SERVICE_URL=http://localhost:3000 \
    python scripts/create_api_key.py "My SDK Project"

The project name can also come from PROJECT_NAME.
"""

import os
import sys
from datetime import datetime, timezone

import httpx


def resolve_project_name() -> str:
    cli_name = " ".join(sys.argv[1:]).strip()
    if cli_name:
        return cli_name
    env_name = os.getenv("PROJECT_NAME", "").strip()
    if env_name:
        return env_name
    return f"Pulse SDK {datetime.now(timezone.utc).isoformat()}"


def create_project():
    """Create a project via the admin API."""
    admin_key = os.getenv("ADMIN_KEY") or os.getenv("TRACE_SERVICE_ADMIN_KEY")
    if not admin_key:
        print("❌ ADMIN_KEY environment variable is required.")
        sys.exit(1)

    base_url = (os.getenv("TRACE_SERVICE_URL", "").strip() or "http://localhost:3000").rstrip("/")
    name = resolve_project_name()

    print("=" * 60)
    print(f"Creating project \"{name}\" via {base_url}/admin/projects")
    print("=" * 60)

    try:
        response = httpx.post(
            f"{base_url}/admin/projects",
            headers={"X-Admin-Key": admin_key},
            json={"name": name},
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        print(f"\n❌ Could not reach trace service: {e}")
        sys.exit(1)

    if response.status_code != 201:
        print(f"\n❌ Failed to create project (status {response.status_code}): {response.text}")
        sys.exit(1)

    data = response.json()
    print(f"\n✅ Project created: {data['name']}")
    print(f"   Project ID: {data['projectId']}")
    print("\n🔐 API Key (save this now, it is only shown once):")
    print(f"   {data['apiKey']}")
    print("\nNext step: export it so the SDK can report traces:")
    print(f"   export PULSE_API_KEY={data['apiKey']}")


if __name__ == "__main__":
    create_project()
