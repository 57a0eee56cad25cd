"""CLI interface for the adaptive learning engine.

Usage:
    python -m ortac_cli seed data/sample_topics.json   Load topics and questions
    python -m ortac_cli quiz --topic python-basics     Take an adaptive quiz
    python -m ortac_cli review                         Review due cards
    python -m ortac_cli due                            Show how many cards are due
    python -m ortac_cli stats                          Show XP, level, streak and badges
"""

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path

from sqlalchemy import and_, select

from ortac_backend.database import async_session, engine
from ortac_backend.models import Base
from ortac_backend.models.learner import Learner
from ortac_backend.models.question import Question, QuestionOption, Topic
from ortac_backend.srs import repository, service
from ortac_backend.srs.badges import DEFAULT_BADGES, evaluation_order
from ortac_backend.srs.errors import EngineError
from ortac_backend.srs.queue import get_due_cards
from ortac_backend.srs.sm2 import Quality

logger = logging.getLogger(__name__)


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_learner() -> int:
    """Ensure there's a default learner and return the ID."""
    async with async_session() as db:
        stmt = select(Learner).order_by(Learner.id.asc()).limit(1)
        result = await db.execute(stmt)
        learner = result.scalar_one_or_none()
        if learner:
            return learner.id

        learner = Learner(name="Learner")
        db.add(learner)
        await db.commit()
        await db.refresh(learner)
        return learner.id


async def seed_topics(data: dict) -> tuple[int, int]:
    """Load topics and questions from parsed JSON. Existing topics/prompts are skipped.

    Expected shape::

        {"topics": [{"code": "...", "title": "...", "questions": [
            {"prompt": "...", "difficulty": "easy", "explanation": "...",
             "options": [{"text": "...", "correct": true}, ...]}]}]}

    Returns:
        (topics added, questions added)
    """
    topics_added = questions_added = 0
    async with async_session() as db:
        for topic_data in data.get("topics", []):
            topic = (
                await db.execute(select(Topic).where(Topic.code == topic_data["code"]))
            ).scalar_one_or_none()
            if topic is None:
                topic = Topic(code=topic_data["code"], title=topic_data.get("title", topic_data["code"]))
                db.add(topic)
                await db.flush()
                topics_added += 1

            for q in topic_data.get("questions", []):
                existing = (
                    await db.execute(
                        select(Question.id).where(
                            and_(Question.topic_id == topic.id, Question.prompt == q["prompt"])
                        )
                    )
                ).scalar_one_or_none()
                if existing is not None:
                    continue
                question = Question(
                    topic_id=topic.id,
                    prompt=q["prompt"],
                    explanation=q.get("explanation"),
                    difficulty=q.get("difficulty"),
                )
                db.add(question)
                await db.flush()
                for position, opt in enumerate(q.get("options", [])):
                    db.add(
                        QuestionOption(
                            question_id=question.id,
                            text=opt["text"],
                            is_correct=bool(opt.get("correct", False)),
                            position=position,
                        )
                    )
                questions_added += 1
        await db.commit()
    logger.info("Seeded %d topics and %d questions", topics_added, questions_added)
    return topics_added, questions_added


async def cmd_seed(args: argparse.Namespace) -> None:
    """Load topics and questions from a JSON file."""
    await ensure_db()
    data = json.loads(Path(args.file).read_text(encoding="utf-8"))
    topics, questions = await seed_topics(data)
    print(f"  Added {topics} topics and {questions} questions.")


def _read_option(option_ids: list[int]) -> int | None:
    """Prompt until a valid option number or 'q'. Returns the option id or None to quit."""
    while True:
        response = input("\n  Your answer: ").strip()
        if response.lower() == "q":
            return None
        if response.isdigit() and 1 <= int(response) <= len(option_ids):
            return option_ids[int(response) - 1]
        print(f"  Enter a number from 1 to {len(option_ids)}, or 'q' to quit.")


async def cmd_quiz(args: argparse.Namespace) -> None:
    """Run an interactive adaptive quiz."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        topic = (await db.execute(select(Topic).where(Topic.code == args.topic))).scalar_one_or_none()
        if topic is None:
            print(f"\n  Unknown topic '{args.topic}'. Run 'seed' first.")
            return

        quiz = await service.start_quiz(db, learner_id, topic.id, size=args.size)
        print(f"\n  Quiz: {topic.title}")
        print(f"  {len(quiz.questions)} questions, starting at {quiz.difficulty.tier.value}")
        print("  Type 'q' to quit\n")

        while not quiz.is_exhausted:
            current = quiz.current_question()
            question = await repository.get_question(db, current.question_id)
            print(f"  [{quiz.current_index + 1}/{len(quiz.questions)}] ({current.tier.value})")
            print(f"  {question.prompt}")
            for i, opt in enumerate(question.options, 1):
                print(f"    {i}. {opt.text}")

            start_time = time.time()
            option_id = _read_option([o.id for o in question.options])
            time_ms = int((time.time() - start_time) * 1000)
            if option_id is None:
                summary = await service.abandon_quiz(quiz)
                print(f"\n  Quiz abandoned after {summary.answered} answers (+{summary.xp_earned} XP).")
                return

            outcome = await service.submit_answer(db, quiz, option_id, time_ms)
            if outcome.attempt.correct:
                print(f"  Correct! +{outcome.scoring.total_xp_gained} XP")
            else:
                answer = next(o.text for o in question.options if o.is_correct)
                print(f"  Not quite. Answer: {answer}")
                if question.explanation:
                    print(f"  {question.explanation}")
            if outcome.scoring.leveled_up:
                print(f"  Level up! You are now level {outcome.scoring.state.level}")
            for badge in outcome.scoring.newly_unlocked:
                print(f"  Badge unlocked: {badge.title}")
            print()

        summary = await service.complete_quiz(db, quiz)

    print("\n  Quiz Complete!")
    print(f"  Correct: {summary.correct}/{summary.total_questions}  Score: {summary.score_percent}%")
    print(f"  XP earned: {summary.xp_earned}  Level: {summary.final_level}")
    print(f"  Difficulty: {' > '.join(t.value for t in summary.tier_timeline)}")
    print(f"  Best streak: {summary.best_in_session_streak}  Daily streak: {summary.final_streak_days}\n")


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive review of due cards."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        cards = await get_due_cards(db, learner_id, limit=args.limit)
        if not cards:
            print("\nNo cards due for review. You're all caught up!")
            return

        print(f"\n  Review Session: {len(cards)} cards")
        print("  Ratings: 0=Fail  1=Hard  2=Good  3=Easy")
        print("  Type 'q' to quit\n")

        reviewed = 0
        for i, card in enumerate(cards, 1):
            question = await repository.get_question(db, card.question_id)
            print(f"  [{i}/{len(cards)}] {question.prompt}")
            for j, opt in enumerate(question.options, 1):
                print(f"    {j}. {opt.text}")

            option_id = _read_option([o.id for o in question.options])
            if option_id is None:
                print("\n  Session ended early.")
                break
            correct = any(o.id == option_id and o.is_correct for o in question.options)
            print("  Correct!" if correct else "  Not quite.")

            quality = Quality.GOOD if correct else Quality.FAIL
            rate_input = input(f"  Rate [0-3, enter={int(quality)}]: ").strip()
            if rate_input.isdigit() and 0 <= int(rate_input) <= 3:
                quality = Quality(int(rate_input))

            result = await service.grade_review(db, learner_id, card.question_id, quality)
            reviewed += 1
            print(f"  Next review in {result.card.interval_days} days\n")

    print(f"\n  Reviewed: {reviewed}\n")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        cards = await get_due_cards(db, learner_id)

    print(f"  {len(cards)} cards due for review")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show learner progression."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        state, level = await service.get_progress(db, learner_id)

    print("\n  Progress")
    print(f"  {'Level:':<20} {level.level} ({level.xp_into_level}/{level.xp_for_next_level} XP, {level.percent}%)")
    print(f"  {'Total XP:':<20} {state.total_xp}")
    print(f"  {'Daily streak:':<20} {state.current_streak_days} (best {state.longest_streak_days})")
    print(f"  {'Correct answers:':<20} {state.correct_answers}")
    print(f"  {'Quizzes passed:':<20} {state.quizzes_passed}")
    print(f"  {'Cards reviewed:':<20} {state.review_cards_reviewed}")
    print(f"\n  Badges ({len(state.unlocked_badge_ids)}/{len(DEFAULT_BADGES)})")
    for badge in evaluation_order(DEFAULT_BADGES):
        mark = "x" if badge.id in state.unlocked_badge_ids else " "
        print(f"  [{mark}] {badge.title}: {badge.description}")
    print()


def main() -> None:
    """Entry point for the adaptive learning CLI."""
    parser = argparse.ArgumentParser(
        prog="ortac_cli",
        description="Adaptive quizzes with spaced review and progress tracking",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # seed
    seed_parser = subparsers.add_parser("seed", help="Load topics and questions from JSON")
    seed_parser.add_argument("file", help="Path to a topics JSON file")

    # quiz
    quiz_parser = subparsers.add_parser("quiz", help="Take an adaptive quiz")
    quiz_parser.add_argument("--topic", required=True, help="Topic code")
    quiz_parser.add_argument("--size", type=int, default=None, help="Max questions per quiz")

    # review
    review_parser = subparsers.add_parser("review", help="Review due cards")
    review_parser.add_argument("--limit", type=int, default=20, help="Max cards per session")

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # stats
    subparsers.add_parser("stats", help="Show XP, level, streak and badges")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "seed": cmd_seed,
        "quiz": cmd_quiz,
        "review": cmd_review,
        "due": cmd_due,
        "stats": cmd_stats,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except EngineError as exc:
        print(f"  Error: {exc.detail}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
