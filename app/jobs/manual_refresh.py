import argparse
import asyncio
import json

from app.config import get_settings
from app.services.engine import build_engine
from app.services.roster_models import RosterType


async def run_refresh(roster_types: tuple[RosterType, ...], *, clear_winners: bool = False) -> dict:
    engine = build_engine(get_settings())
    await engine.load_snapshots()
    if clear_winners:
        await engine.winner_cache.clear()
    report = await engine.refresher.refresh_all(roster_types)
    return report.to_dict()


def main():
    parser = argparse.ArgumentParser(description="Manual roster refresh runner")
    parser.add_argument(
        "--roster-type",
        choices=[row.value for row in RosterType],
        help="Refresh only one roster type (default: all)",
    )
    parser.add_argument(
        "--clear-winners",
        action="store_true",
        help="Drop cached election winners before reconciling acting officials",
    )
    args = parser.parse_args()

    roster_types = (RosterType(args.roster_type),) if args.roster_type else tuple(RosterType)
    result = asyncio.run(run_refresh(roster_types, clear_winners=args.clear_winners))

    print(json.dumps(result, ensure_ascii=False, indent=2))
    if not result["success"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
