# scripts/db/seed_db.py
"""
Development seed: one operator, patients with family members, doctors and
a few appointments in each lifecycle stage. Payments are left to the API.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from app.db import DbManager
from app.db.models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    FamilyMember,
    User,
    UserRole,
    utcnow,
)
from common import get_app_logger

logger = get_app_logger(__name__)

DEFAULT_TEMPLATE: dict[str, Any] = {
    "operators": [{"name": "Operator", "email": "admin@example.com"}],
    "patients": [
        {"name": "Kim Minji", "email": "minji@example.com"},
        {"name": "Lee Junho", "email": "junho@example.com"},
    ],
    "family_members": [
        {"name": "Kim Seoyeon", "relation": "CHILD", "date_of_birth": date(2016, 3, 2)},
    ],
    "doctors": [
        {"name": "Park", "specialty": "Internal Medicine", "contact_info": "02-555-0100"},
        {"name": "Choi", "specialty": "Pediatrics", "contact_info": "02-555-0101"},
    ],
    "prices": [Decimal("30000"), Decimal("45000.50")],
}


async def seed_db(
    db_manager: DbManager,
    data_template: dict[str, Any] = DEFAULT_TEMPLATE,
) -> dict[str, list[str]]:
    """
    Insert the template rows and return the created ids per table.
    Meant for an empty development database.
    """
    operators = [
        User(role=UserRole.ADMIN, **row) for row in data_template["operators"]
    ]
    patients = [
        User(role=UserRole.PATIENT, **row) for row in data_template["patients"]
    ]
    doctors = [Doctor(**row) for row in data_template["doctors"]]

    async with db_manager.session() as session:
        session.add_all([*operators, *patients, *doctors])
        await session.flush()

        members = [
            FamilyMember(user_id=patients[0].user_id, **row)
            for row in data_template["family_members"]
        ]
        session.add_all(members)
        await session.flush()

        start = utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(days=1)
        appointments = [
            # Waiting for the provider to set a price
            Appointment(
                requester_id=patients[1].user_id,
                doctor_id=doctors[0].doctor_id,
                appointment_date=start,
                status=AppointmentStatus.PENDING,
            ),
        ]
        for offset, price in enumerate(data_template["prices"], start=1):
            appointments.append(
                Appointment(
                    requester_id=patients[0].user_id,
                    family_member_id=members[0].member_id if members and offset == 1 else None,
                    doctor_id=doctors[offset % len(doctors)].doctor_id,
                    appointment_date=start + timedelta(hours=offset),
                    status=AppointmentStatus.AWAITING_PAYMENT,
                    price=price,
                )
            )
        session.add_all(appointments)
        await session.flush()

        results = {
            "users": [u.user_id for u in (*operators, *patients)],
            "family_members": [m.member_id for m in members],
            "doctors": [d.doctor_id for d in doctors],
            "appointments": [a.appointment_id for a in appointments],
        }

    logger.info(
        "Database seeded",
        **{table: len(ids) for table, ids in results.items()},
    )
    return results


__all__ = ["seed_db", "DEFAULT_TEMPLATE"]
