"""Assessment status probe.

Checks that the evaluator settings are present, that the API answers, and
prints the current assessment status for the configured credential.

Usage:
    python scripts/check_assessment_status.py
"""

from urllib.parse import urlparse

import requests

from agentic_assessment_client.config import ClientSettings


def main() -> int:
    settings = ClientSettings.from_env()
    token = settings.api_token

    print("ASSESSMENT_API_URL:", settings.api_url)
    print("ASSESSMENT_API_TOKEN (prefix):", token[:8] + "..." if token else None)
    if settings.query_params:
        print("ASSESSMENT_QUERY_PARAMS:", settings.query_params)

    if not token:
        print("Missing ASSESSMENT_API_TOKEN")
        return 1

    parsed = urlparse(settings.api_url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        print("❌ ASSESSMENT_API_URL is not an http(s) URL")
        return 1

    print("\nAssessment status:")
    try:
        resp = requests.get(
            f"{settings.api_url}/v1/agent/assessments",
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            params=settings.query_params or None,
            timeout=settings.request_timeout,
        )
    except requests.exceptions.RequestException as exc:
        print("❌ HTTP request failed:", exc)
        return 1

    print("Status code:", resp.status_code)
    if resp.status_code != 200:
        print("Body:", resp.text[:200])
        return 1

    data = resp.json().get("data")
    if not data:
        print("No assessment found for this user.")
        return 0

    print("Session:", data.get("session_id"))
    print("State:", data.get("status"))
    if data.get("completed_at"):
        print("Completed at:", data["completed_at"])
    if data.get("cooldown_ends_at"):
        print("⏳ Cooldown until:", data["cooldown_ends_at"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
