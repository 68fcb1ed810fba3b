from db import init_db, get_repository
from models import User, Trip, StudyGroup, dump_list
from co2 import estimate_trip_co2
from workflow import WELCOME_CREDITS
import random

CAMPUSES = ["Politecnico Bovisa", "Città Studi", "Bicocca", "Statale Festa del Perdono"]
TOWNS = ["Monza", "Como", "Lodi", "Pavia", "Bergamo", "Varese"]
SUBJECTS = ["Analisi 1", "Fisica", "Informatica", "Economia", None]


def seed():
    init_db()
    repo = get_repository()
    # add users
    users = [
        User(
            id=f"student{i}@uni.example",
            name=f"Student {i}",
            role=random.choice(["driver", "passenger", "both"]),
            skills=dump_list(random.sample(["Analisi 1", "Fisica", "Informatica"], k=random.randint(0, 2))),
            credits=WELCOME_CREDITS + random.randint(0, 1500),
            password="demo",
        )
        for i in range(1, 11)
    ]
    for u in users:
        repo.save(u)
    drivers = [u for u in users if u.role != "passenger"] or users[:1]
    for i in range(1, 16):
        d = drivers[(i - 1) % len(drivers)]
        distance = round(random.uniform(8, 45), 1)
        repo.save(Trip(
            id=f"trip{i}",
            driver_id=d.id,
            driver_name=d.name,
            from_loc=random.choice(TOWNS),
            to_loc=random.choice(CAMPUSES),
            departure_time=f"2026-11-{random.randint(1, 28):02d}T{random.randint(7, 9):02d}:30",
            seats_available=random.randint(1, 4),
            distance_km=distance,
            co2_saved=estimate_trip_co2(distance),
            tutoring_subject=random.choice(SUBJECTS),
            assistance_offered=random.random() < 0.2,
        ))
    repo.save(StudyGroup(
        id="group1",
        train_number="2615",
        train_line="Milano Centrale - Bergamo",
        departure_time="2026-11-03T07:45",
        subject="Analisi 1",
        from_loc="Milano Centrale",
        creator_id=users[0].id,
        members=dump_list([users[0].id]),
    ))
    print("Seeded sample data")


if __name__ == "__main__":
    seed()
