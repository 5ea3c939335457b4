"""
Seed script: populates demo headache episodes for a demo account.

- Signs in with SEED_EMAIL / SEED_PASSWORD (the account must already exist).
- Deletes the account's existing episodes, then inserts 60 days of
  reproducible demo data.
- Row-level access rules keep other accounts untouched.

Usage:
    SEED_EMAIL=demo@example.com SEED_PASSWORD=demo1234 python3 seed.py
"""

import os
import random
import uuid
from datetime import date, datetime, timedelta, timezone

from backend import BackendAuth, SupabaseClient
from config import SUPABASE_ANON_KEY, SUPABASE_URL
from models import COMMON_TRIGGERS, SYMPTOM_FLAGS, Episode, PainQuality, Zone
from store import RecordStore

EMAIL = os.environ.get("SEED_EMAIL", "demo@example.com")
PASSWORD = os.environ.get("SEED_PASSWORD", "demo1234")
TODAY = date.today()
DAYS = 60

MEDICATIONS = ["", "", "Ibuprofen 400mg", "Paracetamol 1g", "Sumatriptan 50mg"]
FOODS = ["", "", "", "Aged cheese", "Red wine", "Chocolate", "Skipped lunch"]
NOTES = [
    "",
    "",
    "Started during a long meeting.",
    "Woke up with it.",
    "Better after lying down in the dark.",
    "Hard to focus on screens.",
]


def day(offset: int) -> date:
    return TODAY - timedelta(days=offset)


def make_episode(rng: random.Random, d: date) -> Episode:
    hour = rng.choice([7, 9, 11, 14, 16, 19, 21, 23, 3])
    start = datetime(d.year, d.month, d.day, hour, rng.randint(0, 59)).astimezone(timezone.utc)
    intensity = rng.randint(2, 9)
    # Stronger attacks last longer and carry more symptoms.
    end = start + timedelta(minutes=rng.randint(30, 90) * max(1, intensity // 2))
    return Episode(
        id=str(uuid.uuid4()),
        started_at=start,
        ended_at=end,
        intensity=intensity,
        quality=rng.choice(list(PainQuality)),
        locations=rng.sample(list(Zone), rng.randint(1, 3)),
        triggers=rng.sample(COMMON_TRIGGERS, rng.randint(0, 3)),
        medication=rng.choice(MEDICATIONS),
        food=rng.choice(FOODS),
        notes=rng.choice(NOTES),
        **{key: rng.random() < intensity / 12 for key, _ in SYMPTOM_FLAGS},
    )


def main():
    client = SupabaseClient(SUPABASE_URL, SUPABASE_ANON_KEY)
    auth = BackendAuth(client)
    session = auth.sign_in(EMAIL, PASSWORD)
    print(f"Signed in as {session.email or EMAIL}")

    store = RecordStore(client, auth)
    existing = store.list_all()
    for ep in existing:
        store.delete(ep.id)
    print(f"Cleared {len(existing)} existing episodes.")

    rng = random.Random(42)  # fixed seed for reproducibility
    inserted = 0
    for offset in range(DAYS, 0, -1):
        # Roughly two attacks a week.
        if rng.random() < 0.3:
            store.create(make_episode(rng, day(offset)))
            inserted += 1
    print(f"Inserted {inserted} episodes over {DAYS} days.")
    auth.sign_out()


if __name__ == "__main__":
    main()
