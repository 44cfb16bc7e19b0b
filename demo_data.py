"""
Demo dataset: a year of logging from 195 lb down toward a 180 lb target.

Entries every 3-4 days with the occasional plateau, then daily for the final month,
with a few milestone notes along the way.
"""
from __future__ import annotations

import random
from datetime import date, datetime, timedelta
from typing import List, Optional

import pandas as pd

from models import UserProfile, WeightSample

DEMO_USER_ID = "demo-user"
START_WEIGHT = 195.0
TARGET_WEIGHT = 180.0

MILESTONES = {
    0: "Starting my weight loss journey!",
    28: "One month in - slight setback, but back on track",
    58: "Staying consistent",
    160: "Feeling great!",
    250: "Summer progress, halfway to goal!",
    340: "Almost at the finish line!",
}


def generate_samples(user_id: str = DEMO_USER_ID, end: Optional[date] = None,
                     seed: Optional[int] = None) -> List[WeightSample]:
    """Samples ending on ``end`` (default today), ascending by date."""
    rng = random.Random(seed)
    end = end or date.today()
    start = end - timedelta(days=365)
    last_month = end - timedelta(days=30)
    notes = {start + timedelta(days=offset): text for offset, text in MILESTONES.items()}
    notes[end] = "One year of dedication!"

    samples: List[WeightSample] = []
    current = START_WEIGHT
    day = start
    while day <= end and current >= TARGET_WEIGHT:
        jitter = (rng.random() - 0.5) * 0.6
        progress = 1 - (current - TARGET_WEIGHT) / (START_WEIGHT - TARGET_WEIGHT)
        weekly_loss = 0.4 if progress < 0.3 else 0.3 if progress < 0.7 else 0.2

        if day >= last_month:
            step = 1
            current = current - weekly_loss / 7 + jitter
        else:
            step = rng.randint(3, 4)
            if rng.random() < 0.08 and current < 190:
                current += 0.3
            else:
                current = current - (weekly_loss / 7) * step + jitter
        current = max(current, TARGET_WEIGHT)

        stamp = datetime(day.year, day.month, day.day, 8, 0)
        samples.append(WeightSample(
            user_id=user_id,
            date=day,
            weight=round(current, 1),
            note=notes.get(day),
            created_at=stamp,
            updated_at=stamp,
        ))
        day += timedelta(days=step)
    return samples


def demo_profile(user_id: str = DEMO_USER_ID) -> UserProfile:
    return UserProfile(
        user_id=user_id,
        starting_weight=START_WEIGHT,
        target_weight=TARGET_WEIGHT,
        height=70.0,
        age=32,
        display_name="Demo",
    )


if __name__ == "__main__":
    df = pd.DataFrame([{"Date": s.date.isoformat(), "Weight": s.weight} for s in generate_samples()])
    csv_path = "demo_weights.csv"
    df.to_csv(csv_path, index=False)
    print(f"Wrote {len(df)} rows to {csv_path}")
