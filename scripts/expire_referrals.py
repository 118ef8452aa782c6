from __future__ import annotations

from app.config import load_workflow_config
from app.referrals.jobs import expire_stale_referrals
from services.observability import configure_logging


def main() -> None:
    configure_logging()
    n = expire_stale_referrals(load_workflow_config())
    print(f"expired={n}")


if __name__ == "__main__":
    main()
