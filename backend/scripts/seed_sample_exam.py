"""CLI script to create the sample programming quiz.
Usage: python scripts/seed_sample_exam.py [--days DAYS]
"""
import sys
import argparse
import pathlib
from datetime import timedelta
# Ensure `backend/` is on sys.path so `examhub` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from examhub.config import Settings
from examhub.database import build_engine, create_db_and_tables
from examhub.models import utcnow
from examhub.schemas import ExamIn
from examhub import services

SAMPLE_QUIZ = {
    'title': 'Sample Programming Quiz',
    'description': 'A basic quiz about programming concepts',
    'duration': 30,
    'questions': [
        {
            'text': 'What is TypeScript?',
            'options': [
                {'text': 'A JavaScript framework'},
                {'text': 'A superset of JavaScript with static typing', 'correct': True},
                {'text': 'A new programming language'},
                {'text': 'A JavaScript runtime'},
            ],
        },
        {
            'text': 'What does REST stand for?',
            'options': [
                {'text': 'React Express Server Time'},
                {'text': 'Representational State Transfer', 'correct': True},
                {'text': 'Remote Endpoint Service Transfer'},
                {'text': 'Regular Expression State Test'},
            ],
        },
        {
            'text': 'Which of these is NOT a JavaScript data type?',
            'options': [
                {'text': 'undefined'},
                {'text': 'boolean'},
                {'text': 'string'},
                {'text': 'integer', 'correct': True},
            ],
        },
    ],
}


def main(days: int = 7):
    """Create the sample quiz, open from now for `days` days."""
    settings = Settings()
    engine = build_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    start = utcnow()
    payload = ExamIn(**SAMPLE_QUIZ, start_time=start, end_time=start + timedelta(days=days))
    with Session(engine) as session:
        exam = services.ExamCatalogService(session).create_exam(payload)
        print(f'Created exam {exam.id}: {exam.title} (open until {exam.end_time:%Y-%m-%d %H:%M} UTC)')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--days', type=int, default=7, help='How many days the exam stays open')
    args = parser.parse_args()
    main(days=args.days)
