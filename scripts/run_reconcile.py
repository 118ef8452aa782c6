from __future__ import annotations

import argparse

from services.observability import configure_logging
from services.reconcile import run_reconcile


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync PROCESSING payouts with the payout gateway once.")
    parser.add_argument("--batch-size", type=int, default=100)
    parser.add_argument("--lookback-minutes", type=int, default=240)
    args = parser.parse_args()

    configure_logging()
    result = run_reconcile(batch_size=args.batch_size, lookback_minutes=args.lookback_minutes)
    summary = result["summary"]

    print("run_at:", result["run_at"])
    print(
        "counts:",
        f"processing_checked={summary['processing_checked']}",
        f"completed={summary['completed']}",
        f"failed={summary['failed']}",
        f"still_pending={summary['still_pending']}",
        f"provider_errors={summary['provider_errors']}",
        f"confirmed_missing_ledger={summary['confirmed_missing_ledger']}",
    )


if __name__ == "__main__":
    main()
