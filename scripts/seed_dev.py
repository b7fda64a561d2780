"""Reset the development database and load sample criteria and accounts."""

import logging
import os

from dotenv import load_dotenv

from hackeval.db.engine import get_sessionmaker, make_engine
from hackeval.models import Base, User, UserRole
from hackeval.workflows import create_criterion

load_dotenv()

CRITERIA = [
    ("Innovation", 30, "Originality of the idea and approach."),
    ("Technical Execution", 30, "Quality and completeness of the implementation."),
    ("Impact", 25, "How well the project addresses the problem statement."),
    ("Presentation", 15, "Clarity of the demo video and slides."),
]

ACCOUNTS = [
    ("Event Admin", "admin@example.com", UserRole.ADMIN),
    ("Evaluator One", "evaluator1@example.com", UserRole.EVALUATOR),
    ("Evaluator Two", "evaluator2@example.com", UserRole.EVALUATOR),
]


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()

    # SQLite refuses to drop tables in FK order otherwise
    with engine.connect() as conn:
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.commit()
    Base.metadata.create_all(engine)

    password = os.getenv("SEED_PASSWORD", "changeme")
    Session = get_sessionmaker(engine)
    with Session.begin() as session:
        for name, weight, description in CRITERIA:
            create_criterion(session, name, weight, description)
        session.add_all(
            User(name=name, email=email, role=role, password=password)
            for name, email, role in ACCOUNTS
        )

    print(f"Seeded {len(CRITERIA)} criteria and {len(ACCOUNTS)} accounts.")


if __name__ == "__main__":
    main()
