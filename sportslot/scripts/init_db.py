from __future__ import annotations

from sqlalchemy import select

from sportslot.db.base import Base
from sportslot.db.session import SessionLocal, engine

# Import models to register with SQLAlchemy
import sportslot.models  # noqa: F401
from sportslot.models.court import Court
from sportslot.services.settings_service import seed_defaults

DEFAULT_COURTS = [
    {"name": "Badminton 1", "category": "badminton"},
    {"name": "Badminton 2", "category": "badminton"},
    {"name": "Tennis", "category": "tennis"},
    {"name": "Futsal", "category": "futsal"},
    {"name": "Basketball", "category": "basketball"},
    {"name": "Volleyball", "category": "volleyball"},
]


def main(seed_courts: bool = True) -> int:
    # Create tables
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        added = seed_defaults(db)

        courts = 0
        if seed_courts and db.execute(select(Court.id).limit(1)).first() is None:
            for c in DEFAULT_COURTS:
                db.add(Court(name=c["name"], category=c["category"]))
                courts += 1
            db.commit()
    finally:
        db.close()

    print(f"DB initialized (policy keys added: {added}, courts added: {courts})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
