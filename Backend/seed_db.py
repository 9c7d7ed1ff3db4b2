"""
Pokémon cache warm-up script.

Random rounds only draw from ``pokemon_cache``, so a fresh database needs the
catalog fetched from PokéAPI once before anyone can play.

Usage:
    python seed_db.py                  # generation I
    python seed_db.py 1 2 3            # several generations
    python seed_db.py --all            # every generation (slow, ~1000 requests x3)
"""

import argparse
import time

from database import SessionLocal, init_db
from models import PokemonCache
from pokemon_service import GENERATION_RANGES, get_by_id, id_range_for_generation


def seed_generation(db, generation: int) -> tuple:
    """Fetch every missing Pokémon of one generation. Returns (cached, failed)."""
    first_id, last_id = id_range_for_generation(generation)
    existing = {
        pid for (pid,) in db.query(PokemonCache.id).filter(PokemonCache.id.between(first_id, last_id))
    }
    cached, failed = 0, 0
    for pokemon_id in range(first_id, last_id + 1):
        if pokemon_id in existing:
            continue
        if get_by_id(db, pokemon_id) is None:
            failed += 1
            print(f"   ✗ #{pokemon_id} could not be fetched")
        else:
            cached += 1
    return cached, failed


def seed(generations):
    """Run all seeding steps sequentially."""
    print("⏳ Ensuring tables …")
    init_db()

    db = SessionLocal()
    try:
        for generation in generations:
            print(f"⏳ Caching generation {generation} …")
            start = time.time()
            cached, failed = seed_generation(db, generation)
            print(f"   ✓ {cached} cached, {failed} failed in {time.time() - start:.1f}s")
    finally:
        db.close()

    print("\n🎉 Pokémon cache ready!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Warm the Pokémon cache from PokéAPI")
    parser.add_argument("generations", nargs="*", type=int, default=[1])
    parser.add_argument("--all", action="store_true", help="seed every generation")
    args = parser.parse_args()
    seed(range(1, len(GENERATION_RANGES) + 1) if args.all else args.generations)
