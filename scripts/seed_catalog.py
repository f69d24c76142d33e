#!/usr/bin/env python3
"""
Seed shops and locations (dormitories).

Existing entries (matched by name) are left untouched, so the script can be
run repeatedly.

Usage:
    python scripts/seed_catalog.py --shop "Pizza Place:25" --shop "Asia Market:40" \
        --location "Dorm A" --location "Dorm B"
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db import create_db_and_tables
from models.location import LocationDTO
from models.shop import ShopDTO
from repositories.location import LocationRepository
from repositories.shop import ShopRepository
from utils.transaction_manager import TransactionManager


def parse_shop(value: str) -> ShopDTO:
    """Parse ``NAME:MIN_AMOUNT``."""
    name, sep, min_amount = value.rpartition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME:MIN_AMOUNT, got '{value}'")
    try:
        amount = float(min_amount)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid minimum amount '{min_amount}'")
    if amount <= 0:
        raise argparse.ArgumentTypeError(f"minimum amount must be positive, got {amount}")
    return ShopDTO(name=name.strip(), min_amount=amount, is_active=True)


async def seed_catalog(shops: list[ShopDTO], locations: list[str]) -> tuple[int, int]:
    """Insert missing shops and locations. Returns (shops_created, locations_created)."""
    shops_created = locations_created = 0

    async with TransactionManager.atomic_transaction() as session:
        for shop in shops:
            if await ShopRepository.get_by_name(shop.name, session) is not None:
                print(f"⏭️  Shop '{shop.name}' already exists")
                continue
            created = await ShopRepository.create(shop, session)
            shops_created += 1
            print(f"✅ Shop '{created.name}' (id={created.id}, min amount {created.min_amount:.2f})")

        for name in locations:
            name = name.strip()
            if not name:
                continue
            if await LocationRepository.get_by_name(name, session) is not None:
                print(f"⏭️  Location '{name}' already exists")
                continue
            created = await LocationRepository.create(LocationDTO(name=name), session)
            locations_created += 1
            print(f"✅ Location '{created.name}' (id={created.id})")

    return shops_created, locations_created


async def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed shops and locations")
    parser.add_argument("--shop", dest="shops", action="append", type=parse_shop, default=[],
                        metavar="NAME:MIN_AMOUNT", help="shop with its pool funding threshold")
    parser.add_argument("--location", dest="locations", action="append", default=[],
                        metavar="NAME", help="dormitory name")
    args = parser.parse_args(argv)

    if not args.shops and not args.locations:
        parser.error("nothing to seed, pass --shop and/or --location")

    try:
        await create_db_and_tables()
        shops_created, locations_created = await seed_catalog(args.shops, args.locations)
        print(f"📊 Created {shops_created} shop(s) and {locations_created} location(s)")
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
