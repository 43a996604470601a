#!/usr/bin/env python3
"""Recompute trending records for a period.

Safe to re-run: records are upserted on (item, area, period, date).

Usage:
    docker compose exec backend python -m scripts.calculate_trending
    docker compose exec backend python -m scripts.calculate_trending --period weekly --date 2026-10-12
    docker compose exec backend python -m scripts.calculate_trending --item-type search_term
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add backend to path when running as script
backend_dir = Path(__file__).resolve().parent.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))

from app.models.base import SyncSessionLocal
from app.models.business import Business, BusinessOffering, Category  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.user_interaction import UserInteraction  # noqa: F401
from app.models.user_preference import UserPreference  # noqa: F401
from app.models.activity_log import BusinessView, SearchLog  # noqa: F401
from app.models.trending_data import TrendingData  # noqa: F401
from app.services.trending_service import ITEM_TYPES, TIME_PERIODS, calculate_all_trending, calculate_trending

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def run(period: str, day: date | None, item_type: str) -> dict:
    db = SyncSessionLocal()
    try:
        if item_type == "all":
            results = calculate_all_trending(db, period, day)
        else:
            results = {item_type: calculate_trending(db, item_type, period, day)}
        db.commit()
        return results
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Calculate trending records")
    parser.add_argument("--period", choices=TIME_PERIODS, default="daily")
    parser.add_argument("--date", type=date.fromisoformat, help="Period date, YYYY-MM-DD (default: today)")
    parser.add_argument("--item-type", choices=ITEM_TYPES + ("all",), default="all")
    args = parser.parse_args()

    results = run(args.period, args.date, args.item_type)

    print("=" * 60)
    print(f"Trending ({args.period}) complete")
    for item_type, stats in results.items():
        print(f"  {item_type:>12}: " + ", ".join(f"{k}={v}" for k, v in stats.items()))


if __name__ == "__main__":
    main()
