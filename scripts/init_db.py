#!/usr/bin/env python3
"""Create the SalonDesk tables, optionally seeding a demo salon."""
import argparse
import sys
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from salondesk import create_app
from salondesk.extensions import db
from salondesk.models import Branch, RevenueCommission, Salon, Service, Staff, Tax


def seed_demo_salon():
    salon = Salon(name="Demo Salon", contact_number="+91 90000 00000")
    db.session.add(salon)
    db.session.flush()

    db.session.add(Branch(salon_id=salon.salon_id, name="Main Branch"))
    plan = RevenueCommission(
        salon_id=salon.salon_id,
        commission_name="Standard",
        commission_type="Percentage",
        commission=[{"slot": "0-500", "amount": 10}, {"slot": "501-100000", "amount": 15}],
    )
    db.session.add(plan)
    db.session.flush()

    db.session.add(Staff(salon_id=salon.salon_id, full_name="Demo Stylist", assigned_commission_id=plan.commission_id))
    db.session.add(Service(salon_id=salon.salon_id, name="Haircut", regular_price=Decimal("500")))
    db.session.add(Tax(salon_id=salon.salon_id, title="GST", type="percent", value=Decimal("18")))
    db.session.commit()
    return salon


def init_database(seed=False):
    app = create_app()
    with app.app_context():
        db.create_all()
        print("✅ Database tables initialized successfully")
        if seed:
            salon = seed_demo_salon()
            print(f"✅ Seeded demo salon {salon.salon_id}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed", action="store_true", help="insert a demo salon with staff, service and tax")
    init_database(seed=parser.parse_args().seed)
