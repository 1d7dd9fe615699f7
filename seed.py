"""
Populate default event categories and sample gallery events.

Each collection is only seeded while it is empty, so running this twice is
harmless. Usage: python seed.py (reads the same MONGODB_URI / DB_NAME as the
API).
"""
import logging
import sys
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

from config import get_settings
from database import Storage

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"value": "workshop", "label": "Workshop", "order": 1},
    {"value": "conference", "label": "Conference", "order": 2},
    {"value": "seminar", "label": "Seminar", "order": 3},
]

SAMPLE_EVENTS = [
    {
        "title": "1 Day workshop on Bibliometric, Scientometric & Network Analysis",
        "description": "Hosted by Center for Advanced Data and Computational Science, BML Munjal University",
        "date": "September 30, 2025",
        "location": "College of Vocational Studies, University of Delhi",
        "images": ["https://i.ibb.co/9mv2KcvL/542c5861-dce1-4371-99ec-acd186c5e82d.jpg"],
        "category": "workshop",
        "link": "/public/BIBLIOMETRIC_P.pdf",
        "status": "Upcoming",
    },
    {
        "title": "Hands-on session on MetaInfoSci",
        "description": "Hosted by Center for Advanced Data and Computational Science, BML Munjal University",
        "date": "April 23, 2025",
        "location": "BMU",
        "images": [
            "https://images.unsplash.com/photo-1540575467063-178a50c2df87?w=500",
            "https://images.unsplash.com/photo-1559136555-9303baea8ebd?w=500",
        ],
        "category": "workshop",
        "link": "#",
        "status": "Concluded",
    },
    {
        "title": "One Week Hands-on Workshop on Scientometrics & Network Science",
        "description": "Hosted by Center for Advanced Data and Computational Science, BML Munjal University",
        "date": "July 14 to 18, 2025",
        "location": "Hub C- BML Munjal University (In-person)",
        "images": [
            "https://images.unsplash.com/photo-1517048676732-d65bc937f952?w=500",
            "https://images.unsplash.com/photo-1552664730-d307ca884978?w=500",
        ],
        "category": "workshop",
        "link": "#",
        "status": "Concluded",
    },
]


def seed(storage: Storage) -> dict:
    """Insert defaults into empty collections; returns how many were inserted."""
    inserted = {"categories": 0, "events": 0}

    if storage.categories.count_documents({}) == 0:
        storage.categories.insert_many([dict(c) for c in DEFAULT_CATEGORIES])
        inserted["categories"] = len(DEFAULT_CATEGORIES)
        logger.info("Inserted default categories")
    else:
        logger.info("Categories already present (skipping)")

    if storage.events.count_documents({}) == 0:
        now = datetime.now(timezone.utc)
        storage.events.insert_many(
            [{**e, "createdAt": now, "updatedAt": now} for e in SAMPLE_EVENTS]
        )
        inserted["events"] = len(SAMPLE_EVENTS)
        logger.info("Inserted sample events")
    else:
        logger.info("Events already present (skipping)")

    return inserted


def main():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    storage = Storage.from_settings(settings)
    try:
        seed(storage)
    except PyMongoError:
        logger.exception("Seeding error")
        sys.exit(1)
    finally:
        storage.close()


if __name__ == "__main__":
    main()
