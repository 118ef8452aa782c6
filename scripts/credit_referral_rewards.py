from __future__ import annotations

import argparse

from app.config import load_workflow_config
from app.referrals.jobs import credit_pending_rewards
from services.observability import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Credit rewards for converted referrals.")
    parser.add_argument("--batch-size", type=int, default=100)
    args = parser.parse_args()

    configure_logging()
    result = credit_pending_rewards(load_workflow_config(), batch_size=args.batch_size)
    print(f"scanned={result['scanned']} credited={result['credited']} failed={result['failed']}")


if __name__ == "__main__":
    main()
