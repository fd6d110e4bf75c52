"""Sample catalogue for development databases."""
from typing import Any, Dict, List

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product

logger = structlog.get_logger(__name__)

SAMPLE_PRODUCTS: List[Dict[str, Any]] = [
    {
        "name": "Site Reliability Engineering",
        "description": "How Google runs production systems.",
        "price": 189.90,
        "stock": 25,
        "category": "technology",
        "author": "Betsy Beyer, Chris Jones, Jennifer Petoff, Niall Richard Murphy",
        "isbn": "9781491929124",
        "pages": 552,
        "language": "English",
        "publisher": "O'Reilly Media",
        "publication_year": 2016,
    },
    {
        "name": "Observability Engineering",
        "description": "Achieving production excellence with high-cardinality telemetry.",
        "price": 219.00,
        "stock": 12,
        "category": "technology",
        "author": "Charity Majors, Liz Fong-Jones, George Miranda",
        "isbn": "9781492076445",
        "pages": 318,
        "language": "English",
        "publisher": "O'Reilly Media",
        "publication_year": 2022,
    },
    {
        "name": "Designing Data-Intensive Applications",
        "description": "The big ideas behind reliable, scalable, and maintainable systems.",
        "price": 249.90,
        "stock": 8,
        "category": "technology",
        "author": "Martin Kleppmann",
        "isbn": "9781449373320",
        "pages": 616,
        "language": "English",
        "publisher": "O'Reilly Media",
        "publication_year": 2017,
    },
    {
        "name": "Dom Casmurro",
        "description": "Bentinho recalls his life and his jealousy of Capitu.",
        "price": 29.90,
        "stock": 40,
        "category": "fiction",
        "author": "Machado de Assis",
        "isbn": "9788535910681",
        "pages": 256,
        "language": "Portuguese",
        "publisher": "Penguin-Companhia",
        "publication_year": 1899,
    },
    {
        "name": "The Phoenix Project",
        "description": "A novel about IT, DevOps, and helping your business win.",
        "price": 99.90,
        "stock": 0,
        "category": "business",
        "author": "Gene Kim, Kevin Behr, George Spafford",
        "isbn": "9781942788294",
        "pages": 432,
        "language": "English",
        "publisher": "IT Revolution Press",
        "publication_year": 2013,
    },
    {
        "name": "Accelerate",
        "description": "Building and scaling high performing technology organizations.",
        "price": 129.90,
        "stock": 5,
        "category": "business",
        "author": "Nicole Forsgren, Jez Humble, Gene Kim",
        "isbn": "9781942788331",
        "pages": 288,
        "language": "English",
        "publisher": "IT Revolution Press",
        "publication_year": 2018,
    },
]


async def seed_sample_data(session: AsyncSession) -> int:
    """
    Insert the sample catalogue when the products table is empty.

    Returns:
        Number of products inserted (0 if the catalogue already had rows)
    """
    existing = (await session.execute(select(func.count()).select_from(Product))).scalar_one()
    if existing:
        logger.debug("sample_data_skipped", existing_products=existing)
        return 0

    session.add_all(Product(**data) for data in SAMPLE_PRODUCTS)
    await session.commit()
    logger.info("sample_data_seeded", products=len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)
