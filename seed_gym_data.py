from datetime import datetime, timedelta, date

from database import init_db, get_db_session
from models_orm import (
    ProfileORM, MemberORM, TrainerORM, PackageTypeORM, PackageORM,
    MemberPackageORM, SessionORM
)
from auth import get_password_hash

PACKAGE_TYPES = [
    ("Personal Training", "One-on-one session with a trainer", "#3b82f6"),
    ("Group Class", "Small group class", "#10b981"),
    ("Pilates", "Reformer and mat pilates", "#f59e0b"),
]

PACKAGES = [
    ("PT 5 Pack", "Personal Training", 5, 60, 250.0),
    ("PT 10 Pack", "Personal Training", 10, 120, 450.0),
    ("Group 12 Pass", "Group Class", 12, 90, 120.0),
    ("Pilates Intro", "Pilates", 4, 30, 80.0),
]

USERS = [
    {"email": "admin@example.com", "name": "Gym Admin", "role": "admin"},
    {"email": "trainer@example.com", "name": "Tom Trainer", "role": "trainer"},
    {"email": "member@example.com", "name": "Alice Member", "role": "member"},
    {"email": "member2@example.com", "name": "Bob Member", "role": "member"},
]


def get_or_create_profile(db, email, name, role):
    profile = db.query(ProfileORM).filter(ProfileORM.email == email).first()
    if profile:
        print(f"User {email} already exists.")
        return profile
    profile = ProfileORM(
        email=email,
        full_name=name,
        role=role,
        hashed_password=get_password_hash("password"),
        is_active=True
    )
    db.add(profile)
    db.flush()
    if role == "member":
        db.add(MemberORM(user_id=profile.id))
    elif role == "trainer":
        db.add(TrainerORM(user_id=profile.id, specializations="Strength,HIIT"))
    print(f"Created {role}: {email} / password")
    return profile


def seed_gym_data():
    init_db()
    db = get_db_session()
    try:
        types = {}
        for name, description, color in PACKAGE_TYPES:
            package_type = db.query(PackageTypeORM).filter(PackageTypeORM.name == name).first()
            if not package_type:
                package_type = PackageTypeORM(name=name, description=description, color=color)
                db.add(package_type)
                db.flush()
            types[name] = package_type

        packages = {}
        for name, type_name, count, days, price in PACKAGES:
            package = db.query(PackageORM).filter(PackageORM.name == name).first()
            if not package:
                package = PackageORM(name=name, package_type_id=types[type_name].id, session_count=count,
                                     duration_days=days, price=price)
                db.add(package)
                db.flush()
            packages[name] = package

        profiles = {u["email"]: get_or_create_profile(db, u["email"], u["name"], u["role"]) for u in USERS}
        db.flush()

        trainer = db.query(TrainerORM).filter(TrainerORM.user_id == profiles["trainer@example.com"].id).first()
        member = db.query(MemberORM).filter(MemberORM.user_id == profiles["member@example.com"].id).first()

        if not db.query(MemberPackageORM).filter(MemberPackageORM.member_id == member.id).first():
            package = packages["PT 5 Pack"]
            start = date.today()
            db.add(MemberPackageORM(
                member_id=member.id,
                package_id=package.id,
                start_date=start.isoformat(),
                end_date=(start + timedelta(days=package.duration_days)).isoformat(),
                sessions_remaining=package.session_count,
                sessions_total=package.session_count,
                price=package.price,
                status="active"
            ))
            print(f"Assigned {package.name} to {profiles['member@example.com'].email}")

        if not db.query(SessionORM).filter(SessionORM.status == "scheduled").first():
            base = datetime.utcnow().replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=1)
            for day in range(5):
                start = base + timedelta(days=day)
                db.add(SessionORM(
                    title="Personal Training", package_type_id=types["Personal Training"].id,
                    trainer_id=trainer.id, max_capacity=1,
                    start_time=start.isoformat(), end_time=(start + timedelta(hours=1)).isoformat()
                ))
                evening = start + timedelta(hours=9)
                db.add(SessionORM(
                    title="Evening Bootcamp", package_type_id=types["Group Class"].id,
                    trainer_id=trainer.id, max_capacity=10, location="Studio 1",
                    start_time=evening.isoformat(), end_time=(evening + timedelta(hours=1)).isoformat()
                ))
            print("Created 10 sessions for the next 5 days")

        db.commit()
    finally:
        db.close()
    print("Done.")


if __name__ == "__main__":
    seed_gym_data()
