"""
Manually refresh Salla OAuth tokens that are due.

Usage:
    python -m backoffice.scripts.refresh_tokens
"""

import logging
import sys

from backoffice.core.dependencies import get_expiry_sweeper


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    print("=== Manual Salla Token Refresh ===")
    try:
        report = get_expiry_sweeper().sweep()
    except Exception as e:
        print(f"\n✗ Error refreshing tokens: {e}")
        return 1

    for outcome in report.outcomes:
        if outcome.refreshed:
            status = "ok"
        else:
            status = f"failed ({outcome.failure.value if outcome.failure else 'unknown'})"
        print(f"  {outcome.merchant_id}: {outcome.reason} -> {status}")
    print(f"\n✓ Token refresh completed: {report.refreshed} refreshed, {report.failed} failed")
    return 0 if report.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
