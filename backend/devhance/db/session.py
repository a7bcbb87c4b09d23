from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from devhance.core.config import settings
import logging

# Initialize logger for this module
logger = logging.getLogger(__name__)

# Dictionary to hold database connection arguments
connect_args = {}

# Check if we are using SQLite via the DATABASE_URL
if "sqlite" in settings.DATABASE_URL:
    # SQLite-specific: disable check_same_thread because aiosqlite
    # runs the connection on its own worker thread
    connect_args = {"check_same_thread": False}

# Create the async SQLAlchemy engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    connect_args=connect_args,
)

# Session factory used for request sessions and for the analysis lock manager,
# which commits lock rows independently of the request transaction
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,   # Keep loaded attributes usable after commit
    autoflush=False,
)

async def get_db() -> AsyncSession:
    """
    Dependency generator for FastAPI to provide a database session.
    Yields an AsyncSession and ensures it's closed after the request is processed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
