#!/usr/bin/env python3
"""
Sample Schedule Loader - Generates a realistic tennis schedule workbook for local sync runs
"""

import os
import random
import sys
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from faker import Faker
from openpyxl import load_workbook

from sheet_records import TRACKED_FIELDS
from sheet_source import create_schedule_workbook
from sync_config import DEFAULT_SHEET_NAME, SheetLayout

HEADER = ['Date & time', 'Category', 'Stage', 'Player 1', 'Player 2', 'Results', 'Venue']

CATEGORIES = ["Men's Singles", "Women's Singles", "Men's Doubles", "Women's Doubles", 'Mixed Doubles',
              'Boys U18', 'Girls U18', 'Boys U14', 'Girls U14']
STAGES = ['Round of 32', 'Round of 16', 'Quarterfinal', 'Semifinal', 'Final']


def random_score(rng: random.Random) -> str:
    sets = []
    for _ in range(rng.choice([2, 3])):
        winner = rng.choice([6, 6, 6, 7])
        loser = rng.randint(0, 4) if winner == 6 else rng.choice([5, 6])
        sets.append(f"{winner}-{loser}")
    return ' '.join(sets)


def generate_matches(num_matches: int, seed: Optional[int] = None, played_ratio: float = 0.5) -> List[Dict[str, str]]:
    """Generate schedule rows; roughly played_ratio of them already have a result"""
    fake = Faker()
    rng = random.Random(seed)
    if seed is not None:
        Faker.seed(seed)

    venues = [f"{fake.city()} Tennis Centre" for _ in range(4)]
    start = datetime(2026, 1, 10, 9, 0)

    matches = []
    for i in range(num_matches):
        kick_off = start + timedelta(days=i // 8, hours=(i % 8) * 1.5)
        played = rng.random() < played_ratio
        matches.append({
            'dateTime': kick_off.strftime('%Y-%m-%d %H:%M'),
            'category': rng.choice(CATEGORIES),
            'stage': rng.choice(STAGES),
            'player1': fake.name(),
            'player2': fake.name(),
            'results': random_score(rng) if played else '',
            'venue': rng.choice(venues),
        })
    return matches


def write_schedule(path: str, matches: List[Dict[str, str]], sheet_name: str = DEFAULT_SHEET_NAME,
                   layout: Optional[SheetLayout] = None) -> None:
    """Write matches below the header, without HubDB ids (the sync will create them)"""
    layout = layout or SheetLayout()
    if os.path.exists(path):
        wb = load_workbook(path)
        if sheet_name not in wb.sheetnames:
            raise ValueError(f'Sheet "{sheet_name}" not found in {path}')
        ws = wb[sheet_name]
        next_row = max(ws.max_row + 1, layout.data_start_row)
    else:
        wb = create_schedule_workbook(path, sheet_name, HEADER, layout)
        ws = wb[sheet_name]
        next_row = layout.data_start_row

    for offset, match in enumerate(matches):
        for index, name in enumerate(TRACKED_FIELDS):
            ws.cell(row=next_row + offset, column=layout.data_first_column + index, value=match[name])
    wb.save(path)


def main() -> int:
    path = os.environ.get('SHEET_WORKBOOK_PATH', 'schedule.xlsx')
    sheet_name = os.environ.get('SHEET_NAME', DEFAULT_SHEET_NAME)
    num_matches = int(os.environ.get('NUM_MATCHES', '16'))
    seed = os.environ.get('SAMPLE_SEED')

    print(f"Starting sample schedule load at {datetime.now()}")
    print(f"Target: {num_matches} matches into {path} [{sheet_name}]")
    print("-" * 70)

    matches = generate_matches(num_matches, seed=int(seed) if seed else None)
    print(f"  ✓ Generated {len(matches)} matches")

    write_schedule(path, matches, sheet_name)
    print(f"  ✓ Wrote {len(matches)} rows to {path}")
    print("=" * 70)
    return 0


if __name__ == '__main__':
    sys.exit(main())
