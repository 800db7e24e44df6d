import sys
import os
import asyncio

# Add parent directory to path to import database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import ensure_indexes, client
from logging_config import setup_logging, get_logger

logger = get_logger("setup_indexes")


async def main():
    print("🚀 Starting Index Creation...")
    await ensure_indexes()
    print("✨ Notification indexes created successfully!")


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    finally:
        client.reset()
