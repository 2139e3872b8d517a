"""Load the default service catalog into the services table.

Usage:
    python -m detailing.seed_services
"""
import sys

from sqlalchemy.orm import Session

from detailing.database import Base, SessionLocal, engine
from detailing.models.service import Service

DEFAULT_SERVICES = [
    {
        "slug": "premium-exterior-wash",
        "title": "Premium Exterior Wash",
        "summary": "Foam bath, hand-finish, and wheel shine for showroom gloss.",
        "base_price": 50,
        "revive_price": 80,
        "duration_minutes": 60,
    },
    {
        "slug": "complete-interior-detail",
        "title": "Complete Interior Detail",
        "summary": "Deep clean from carpets to vents with steam and extraction.",
        "base_price": 100,
        "revive_price": 140,
        "duration_minutes": 120,
    },
    {
        "slug": "ultimate-full-detail",
        "title": "Ultimate Full Detail",
        "summary": "Inside and out reset for vehicles that deserve the works.",
        "base_price": 150,
        "revive_price": 180,
        "duration_minutes": 180,
    },
    {
        "slug": "subscription",
        "title": "Subscription",
        "summary": "Stay tuned for flexible plans that keep your ride fresh all year.",
        "coming_soon": True,
        "duration_minutes": None,
    },
]


def seed_services(db: Session) -> int:
    """Insert catalog entries whose slug is missing; returns how many were added."""
    existing_slugs = {slug for (slug,) in db.query(Service.slug).all()}
    added = 0
    for entry in DEFAULT_SERVICES:
        if entry["slug"] in existing_slugs:
            continue
        db.add(Service(**entry))
        added += 1
    db.commit()
    return added


def main() -> None:
    Base.metadata.create_all(bind=engine, tables=[Service.__table__])
    db = SessionLocal()
    try:
        added = seed_services(db)
    finally:
        db.close()
    print(f"Added {added} service(s).", file=sys.stderr)


if __name__ == "__main__":
    main()
