"""
Database Seeding Script

Creates the schema, one merchant and its dining tables, and prints the
merchant id for use with the API and scripts/simulate.py.
Run from project root: python scripts/seed.py --name "Demo Bistro" --tables 12
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from tableside.core.config import get_settings, setup_logging
from tableside.database import dispose_engine, get_session_maker, init_db
from tableside.models import DiningTable, Merchant


async def seed(name: str, slug: str, num_tables: int) -> str:
    await init_db()

    async with get_session_maker()() as session:
        merchant = (await session.execute(select(Merchant).where(Merchant.slug == slug))).scalars().first()
        if merchant is None:
            merchant = Merchant(name=name, slug=slug)
            session.add(merchant)
            await session.flush()

        existing = set(
            (await session.execute(
                select(DiningTable.label).where(DiningTable.merchant_id == merchant.id)
            )).scalars().all()
        )
        session.add_all([
            DiningTable(merchant_id=merchant.id, label=str(n))
            for n in range(1, num_tables + 1)
            if str(n) not in existing
        ])
        await session.commit()
        merchant_id = merchant.id

    await dispose_engine()
    return merchant_id


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a merchant and its tables")
    parser.add_argument("--name", default="Demo Bistro", help="Merchant display name")
    parser.add_argument("--slug", default="demo-bistro", help="Unique merchant slug")
    parser.add_argument("--tables", type=int, default=12, help="Number of tables (labelled 1..N)")
    args = parser.parse_args()

    setup_logging()
    print(f"Seeding {get_settings().database_url}")
    merchant_id = asyncio.run(seed(args.name, args.slug, args.tables))
    print(f"Merchant id: {merchant_id}")
