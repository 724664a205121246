# scripts/db/run_db_seed.py
# Usage: python -m scripts.db.run_db_seed  (after 'alembic upgrade head')
from app.db import DbManager
from common.config import initialize_config
from dotenv import load_dotenv
from .seed_db import seed_db


async def main():
    load_dotenv()
    config = initialize_config()

    _db_config = config.database
    if not _db_config:
        raise RuntimeError("Database configuration required")

    db_manager = DbManager.from_config(_db_config)
    await db_manager.verify_connection()

    try:
        results = await seed_db(db_manager)
        for table, ids in results.items():
            print(f"{table}: {', '.join(ids)}")
    finally:
        await db_manager.dispose()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
