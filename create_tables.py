import asyncio
from database import engine
from odontia.models import Base


async def create_tables():
    """Create all tables directly using SQLAlchemy (local development without Alembic)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("✅ Odontia tables created successfully!")

if __name__ == "__main__":
    asyncio.run(create_tables())
