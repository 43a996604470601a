#!/usr/bin/env python3
"""Recalculate stored business similarities.

With no scope, runs one batch per category, pairing it with itself and its
compatible categories. --force rescores pairs that already have a record
(and drops those that fall below the threshold).

Usage:
    docker compose exec backend python -m scripts.recalculate_similarities
    docker compose exec backend python -m scripts.recalculate_similarities --category-id 3 --force
    docker compose exec backend python -m scripts.recalculate_similarities --business-ids 10 11 12
    docker compose exec backend python -m scripts.recalculate_similarities --business-id 42
"""

import argparse
import logging
import sys
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
from app.models.business_similarity import BusinessSimilarity  # noqa: F401
from app.services.similarity_service import (
    compatible_category_ids,
    recalculate_by_category,
    recalculate_for_business,
    recalculate_similarities,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def run(business_ids: list[int] | None, category_id: int | None, business_id: int | None, force: bool) -> dict:
    db = SyncSessionLocal()
    try:
        if business_id is not None:
            totals = recalculate_for_business(db, business_id)
        elif business_ids or category_id is not None:
            compatible = compatible_category_ids(db, category_id) if category_id is not None else None
            totals = recalculate_similarities(
                db, business_ids=business_ids, category_id=category_id, force=force, with_category_ids=compatible,
            )
        else:
            totals = {}
            for cid, stats in recalculate_by_category(db, force=force):
                for key, value in stats.items():
                    totals[key] = totals.get(key, 0) + value
                db.commit()
                print(f"  category {cid}: {stats['processed']} pairs, {stats['created']} created, {stats['updated']} updated")
        db.commit()
        return totals
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Recalculate business similarities")
    parser.add_argument("--business-ids", type=int, nargs="+", help="Only pair these businesses with each other")
    parser.add_argument("--category-id", type=int, help="Pair businesses in this category with each other and with compatible categories")
    parser.add_argument("--business-id", type=int, help="Refresh one business against its own and compatible categories")
    parser.add_argument("--force", action="store_true", help="Rescore pairs that already have a record")
    args = parser.parse_args()

    totals = run(args.business_ids, args.category_id, args.business_id, args.force)

    print("=" * 60)
    print("Similarity recalculation complete")
    for key in ("processed", "created", "updated", "removed", "skipped", "failed"):
        print(f"  {key:>10}: {totals.get(key, 0)}")


if __name__ == "__main__":
    main()
