"""
Print the current Salla token status of every merchant.

Usage:
    python -m backoffice.scripts.token_status
"""

import sys

from backoffice.core.dependencies import get_salla_settings, get_token_services
from backoffice.core.models import utcnow
from backoffice.tokens.status import token_status


def main() -> int:
    print("=== Salla Token Status ===\n")
    settings = get_salla_settings()
    records = get_token_services().store.all()
    if not records:
        print("No tokens found in database.\n")
        return 0

    now = utcnow()
    for record in records:
        status = token_status(
            record, now, settings.refresh_window, settings.forced_refresh_interval
        )
        print(f"Merchant ID: {status.merchant_id}")
        print(f"  Expires at: {status.expires_at.isoformat()}")
        print(f"  Days until expiry: {status.days_until_expiry} days")
        print(f"  Last refreshed: {status.last_refreshed_at.isoformat()}")
        print(f"  Days since last refresh: {status.days_since_refresh} days")
        print(f"  Refresh attempts: {status.refresh_attempts}")
        print(f"  Currently refreshing: {status.is_refreshing}")
        if status.needs_refresh:
            print(f"  ⚠️  STATUS: NEEDS REFRESH ({', '.join(status.reasons)})")
        else:
            print("  ✓ STATUS: OK")
        print("")
    return 0


if __name__ == "__main__":
    sys.exit(main())
