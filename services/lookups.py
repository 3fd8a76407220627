"""
Natural-key lookups and shared dictionary upserts.

Skills, skill levels and job levels are store-wide, append-only
dictionaries: created on first reference and reused by every later row and
every later import. Creation runs inside a SAVEPOINT so that a concurrent
import winning the race on the unique key only costs a re-read.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.models.schema import (
    LEVEL_NAMES_BY_RANK, LevelName, Company, Function, Job, JobLevel, JobSkill,
    People, Process, Skill, SkillLevel, Task, TaskSkill
)
from services.exceptions import RowError

logger = logging.getLogger(__name__)

DEFAULT_RANK = 1
MAX_RANK = max(LEVEL_NAMES_BY_RANK)

# Widest value an INTEGER column holds on every supported backend
MAX_INTEGER = 2 ** 31 - 1


def level_name_for_rank(rank: int) -> LevelName:
    """
    Map a rank to its level name.

    Ranks above 5 clamp to EXPERT; ranks below 1 are rejected.
    """
    if rank < 1:
        raise RowError(f"Invalid level rank {rank}: ranks start at 1")
    return LEVEL_NAMES_BY_RANK[min(rank, MAX_RANK)]


def parse_rank(token: str, column: str = 'Skill Rank') -> int:
    """Parse one rank token ("3", "3.0") into a positive integer."""
    try:
        value = float(token)
    except ValueError:
        raise RowError(f"Invalid {column} '{token}': expected a whole number")
    if not value.is_integer():
        raise RowError(f"Invalid {column} '{token}': expected a whole number")
    if value > MAX_INTEGER:
        raise RowError(f"Invalid {column} '{token}': too large")
    rank = int(value)
    if rank < 1:
        raise RowError(f"Invalid {column} '{token}': ranks start at 1")
    return rank


def pair_skills_with_ranks(skills: str, ranks: str) -> List[Tuple[str, int]]:
    """
    Align a comma-separated skill list with a comma-separated rank list.

    The i-th skill takes the i-th rank. Skills without a rank of their own
    take the first rank of the list, or 1 when no rank is given at all.
    Blank skill names are ignored; blank rank slots count as missing.

    Example:
        >>> pair_skills_with_ranks('Welding, Painting, Rigging', '3,1')
        [('Welding', 3), ('Painting', 1), ('Rigging', 3)]
    """
    if not skills or not skills.strip():
        return []

    names = [name.strip() for name in skills.split(',')]
    rank_slots: List[Optional[int]] = []
    if ranks and ranks.strip():
        rank_slots = [parse_rank(token.strip()) if token.strip() else None
                      for token in ranks.split(',')]

    fallback = rank_slots[0] if rank_slots and rank_slots[0] is not None else DEFAULT_RANK

    pairs = []
    for idx, name in enumerate(names):
        if not name:
            continue
        rank = rank_slots[idx] if idx < len(rank_slots) and rank_slots[idx] is not None else fallback
        pairs.append((name, rank))
    return pairs


def get_or_create(
    session: Session,
    model: Type[Any],
    defaults: Optional[Dict[str, Any]] = None,
    **lookup
) -> Tuple[Any, bool]:
    """
    Find a row by its unique lookup columns, creating it if absent.

    Returns:
        (instance, created)
    """
    instance = session.query(model).filter_by(**lookup).first()
    if instance is not None:
        return instance, False

    try:
        with session.begin_nested():
            instance = model(**lookup, **(defaults or {}))
            session.add(instance)
            session.flush()
        return instance, True
    except IntegrityError:
        # Another transaction created it first
        logger.info(f"Concurrent create of {model.__name__} {lookup}; re-reading existing row")
        return session.query(model).filter_by(**lookup).one(), False


def get_or_create_skill(session: Session, name: str) -> Skill:
    skill, created = get_or_create(session, Skill, name=name.strip())
    if created:
        logger.debug(f"Created skill '{skill.name}'")
    return skill


def get_or_create_skill_level(session: Session, rank: int) -> SkillLevel:
    level_name = level_name_for_rank(rank)
    level, _ = get_or_create(
        session, SkillLevel,
        defaults={'level_name': level_name.value, 'description': f'Skill level {rank}'},
        level_rank=rank
    )
    return level


def get_or_create_job_level(session: Session, rank: int) -> JobLevel:
    level_name = level_name_for_rank(rank)
    level, _ = get_or_create(
        session, JobLevel,
        defaults={'level_name': level_name.value, 'description': f'Level {rank}'},
        level_rank=rank
    )
    return level


def attach_job_skills(session: Session, job: Job, skills: str, ranks: str) -> int:
    """
    Attach skills to a job. Existing attachments are left untouched.

    Returns:
        Number of attachments created
    """
    created = 0
    for skill_name, rank in pair_skills_with_ranks(skills, ranks):
        skill = get_or_create_skill(session, skill_name)
        existing = session.get(JobSkill, (job.job_id, skill.skill_id))
        if existing is not None:
            continue
        level = get_or_create_skill_level(session, rank)
        session.add(JobSkill(job_id=job.job_id, skill_id=skill.skill_id, skill_level_id=level.id))
        session.flush()
        created += 1
    return created


def attach_task_skills(session: Session, task: Task, skills: str, ranks: str) -> int:
    """
    Attach required skills to a task. Existing attachments are left untouched.

    Returns:
        Number of attachments created
    """
    created = 0
    for skill_name, rank in pair_skills_with_ranks(skills, ranks):
        skill = get_or_create_skill(session, skill_name)
        existing = session.get(TaskSkill, (task.task_id, skill.skill_id))
        if existing is not None:
            continue
        level = get_or_create_skill_level(session, rank)
        session.add(TaskSkill(
            task_id=task.task_id,
            skill_id=skill.skill_id,
            skill_level_id=level.id,
            skill_name=skill_name
        ))
        session.flush()
        created += 1
    return created


# Natural-key finders

def find_company(session: Session, code: str) -> Optional[Company]:
    return session.query(Company).filter_by(company_code=code).first()


def find_function(session: Session, code: str) -> Optional[Function]:
    return session.query(Function).filter_by(function_code=code).first()


def find_job(session: Session, code: str) -> Optional[Job]:
    return session.query(Job).filter_by(job_code=code).first()


def find_task(session: Session, code: str) -> Optional[Task]:
    return session.query(Task).filter_by(task_code=code).first()


def find_process(session: Session, code: str) -> Optional[Process]:
    return session.query(Process).filter_by(process_code=code).first()


def find_person(session: Session, email: str) -> Optional[People]:
    return session.query(People).filter_by(people_email=email).first()
