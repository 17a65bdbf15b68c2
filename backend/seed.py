from __future__ import annotations

from backend.db import SessionLocal
from backend.db_models import LeadORM

DEMO_LEADS = [
    {"id": "lead-demo", "name": "Demo Traveller", "email": "traveller@example.com"},
]


def seed_demo_data() -> None:
    """Seed demo leads if they are missing."""
    with SessionLocal() as db:
        for lead in DEMO_LEADS:
            if db.get(LeadORM, lead["id"]) is None:
                db.add(LeadORM(**lead))
        db.commit()
