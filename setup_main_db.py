# setup_main_db.py
import asyncio

from gpowatch.core.config import settings
from gpowatch.core.database import create_db_and_tables


async def create_main_tables():
    print(f"Creating run history tables in: {settings.DATABASE_URL}")
    await create_db_and_tables()
    print("All tables created successfully in the main database!")


if __name__ == "__main__":
    asyncio.run(create_main_tables())
