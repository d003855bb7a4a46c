from __future__ import annotations

import os

from stakepool.core.config import settings
from stakepool.core.ledger import SqlReserveLedger
from stakepool.core.staking.registry import PackageRegistry
from stakepool.database import db_session

DAY = 24 * 60 * 60
ONE_TOKEN = 10**18


def main() -> None:
    with db_session() as db:
        registry = PackageRegistry(db)
        packages = registry.list_packages()

        if not packages:
            package_id = registry.add_package(
                rate=3,  # 3%/year
                rate_decimal=0,
                min_staking=100 * ONE_TOKEN,
                lock_duration=30 * DAY,
            )
            print("Created package:", package_id)
        else:
            print("Packages exist:", [p.id for p in packages])

        # reserve must be pre-funded to cover reward payouts
        fund = int(os.getenv("SEED_RESERVE_AMOUNT") or 0)
        if fund > 0:
            ledger = SqlReserveLedger(db, settings.RESERVE_ADDRESS)
            ledger.mint(ledger.reserve_account, fund, memo="seed")
            print("Reserve balance:", ledger.balance_of_reserve())


if __name__ == "__main__":
    main()
