"""
SQLAlchemy models for the organization store.

This module defines the relational schema the workbook import/export engine
reconciles against, matching the schema defined in Alembic migrations.
Every entity that appears on a workbook sheet carries a unique natural key
(code or email); surrogate ids never leave the database.
"""

from enum import Enum
from sqlalchemy import (
    Boolean, Column, Integer, String, Text, Numeric, TIMESTAMP,
    ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class LevelName(str, Enum):
    """Fixed level names, ordered by rank (1-5)."""
    NOVICE = 'NOVICE'
    INTERMEDIATE = 'INTERMEDIATE'
    PROFICIENT = 'PROFICIENT'
    ADVANCED = 'ADVANCED'
    EXPERT = 'EXPERT'


LEVEL_NAMES_BY_RANK = {
    1: LevelName.NOVICE,
    2: LevelName.INTERMEDIATE,
    3: LevelName.PROFICIENT,
    4: LevelName.ADVANCED,
    5: LevelName.EXPERT,
}

_LEVEL_NAME_CHECK = "level_name IN ('NOVICE', 'INTERMEDIATE', 'PROFICIENT', 'ADVANCED', 'EXPERT')"


class Company(Base):
    """Top-level organization; owner of every other entity."""

    __tablename__ = 'company'
    __table_args__ = (
        {'comment': 'Organizations, keyed by company code'},
    )

    company_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    company_code = Column(
        String(64),
        nullable=False,
        unique=True,
        comment='Natural key used by workbook sheets'
    )
    name = Column(String(255), nullable=False)
    created_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False
    )

    functions = relationship('Function', back_populates='company')
    jobs = relationship('Job', back_populates='company')
    tasks = relationship('Task', back_populates='company')
    processes = relationship('Process', back_populates='company')
    people = relationship('People', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.company_id}, code='{self.company_code}')>"


class Function(Base):
    """Organizational function (department), optionally nested under a parent."""

    __tablename__ = 'function'
    __table_args__ = (
        Index('idx_function_company', 'company_id'),
        {'comment': 'Functions (departments), keyed by function code'}
    )

    function_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    function_code = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    company_id = Column(
        Integer,
        ForeignKey('company.company_id', ondelete='CASCADE'),
        nullable=False
    )
    background_color = Column(String(32), nullable=True)
    parent_function_id = Column(
        Integer,
        ForeignKey('function.function_id', ondelete='SET NULL'),
        nullable=True
    )
    overview = Column(Text, nullable=True)

    company = relationship('Company', back_populates='functions')
    parent = relationship('Function', remote_side=[function_id])
    jobs = relationship('Job', back_populates='function')

    def __repr__(self):
        return f"<Function(id={self.function_id}, code='{self.function_code}')>"


class JobLevel(Base):
    """Seniority level of a job, unique by rank."""

    __tablename__ = 'job_level'
    __table_args__ = (
        CheckConstraint(_LEVEL_NAME_CHECK, name='job_level_level_name_check'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    level_name = Column(String(20), nullable=False)
    level_rank = Column(Integer, nullable=False, unique=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<JobLevel(rank={self.level_rank}, name='{self.level_name}')>"


class SkillLevel(Base):
    """Proficiency level attached to a job/task skill, unique by rank."""

    __tablename__ = 'skill_level'
    __table_args__ = (
        CheckConstraint(_LEVEL_NAME_CHECK, name='skill_level_level_name_check'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    level_name = Column(String(20), nullable=False)
    level_rank = Column(Integer, nullable=False, unique=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SkillLevel(rank={self.level_rank}, name='{self.level_name}')>"


class Skill(Base):
    """Skill dictionary entry, unique by name."""

    __tablename__ = 'skill'

    skill_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    name = Column(String(255), nullable=False, unique=True)

    def __repr__(self):
        return f"<Skill(id={self.skill_id}, name='{self.name}')>"


class Job(Base):
    """Job (role) within a function."""

    __tablename__ = 'job'
    __table_args__ = (
        Index('idx_job_company', 'company_id'),
        Index('idx_job_function', 'function_id'),
        {'comment': 'Jobs, keyed by job code'}
    )

    job_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    job_code = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    company_id = Column(
        Integer,
        ForeignKey('company.company_id', ondelete='CASCADE'),
        nullable=False
    )
    function_id = Column(
        Integer,
        ForeignKey('function.function_id', ondelete='CASCADE'),
        nullable=False
    )
    job_level_id = Column(Integer, ForeignKey('job_level.id'), nullable=True)
    hourly_rate = Column(Numeric(precision=12, scale=2), nullable=False, server_default='0')
    max_hours_per_day = Column(Numeric(precision=5, scale=2), nullable=False, server_default='8')
    description = Column(Text, nullable=True)
    overview = Column(Text, nullable=True)
    updated_at = Column(
        TIMESTAMP,
        server_default=text('CURRENT_TIMESTAMP'),
        nullable=False
    )

    company = relationship('Company', back_populates='jobs')
    function = relationship('Function', back_populates='jobs')
    job_level = relationship('JobLevel')
    skills = relationship('JobSkill', back_populates='job', cascade='all, delete-orphan')
    task_links = relationship('JobTask', back_populates='job', cascade='all, delete-orphan')
    people = relationship('People', back_populates='job')

    def __repr__(self):
        return f"<Job(id={self.job_id}, code='{self.job_code}')>"


class JobSkill(Base):
    """Skill required by a job, at a given level."""

    __tablename__ = 'job_skill'

    job_id = Column(
        Integer,
        ForeignKey('job.job_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    skill_id = Column(
        Integer,
        ForeignKey('skill.skill_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    skill_level_id = Column(Integer, ForeignKey('skill_level.id'), nullable=False)

    job = relationship('Job', back_populates='skills')
    skill = relationship('Skill')
    skill_level = relationship('SkillLevel')


class Task(Base):
    """Unit of work performed by jobs and sequenced by processes."""

    __tablename__ = 'task'
    __table_args__ = (
        Index('idx_task_company', 'task_company_id'),
        {'comment': 'Tasks, keyed by task code'}
    )

    task_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    task_code = Column(String(64), nullable=False, unique=True)
    task_name = Column(String(255), nullable=False)
    task_company_id = Column(
        Integer,
        ForeignKey('company.company_id', ondelete='CASCADE'),
        nullable=False
    )
    task_capacity_minutes = Column(Integer, nullable=False, server_default='0')
    task_overview = Column(Text, nullable=True)

    company = relationship('Company', back_populates='tasks')
    skills = relationship('TaskSkill', back_populates='task', cascade='all, delete-orphan')
    job_links = relationship('JobTask', back_populates='task', cascade='all, delete-orphan')
    process_links = relationship('ProcessTask', back_populates='task', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Task(id={self.task_id}, code='{self.task_code}')>"


class TaskSkill(Base):
    """Skill required by a task, at a given level."""

    __tablename__ = 'task_skill'

    task_id = Column(
        Integer,
        ForeignKey('task.task_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    skill_id = Column(
        Integer,
        ForeignKey('skill.skill_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    skill_level_id = Column(Integer, ForeignKey('skill_level.id'), nullable=False)
    skill_name = Column(String(255), nullable=True)

    task = relationship('Task', back_populates='skills')
    skill = relationship('Skill')
    skill_level = relationship('SkillLevel')


class Process(Base):
    """Business process: an ordered sequence of tasks."""

    __tablename__ = 'process'
    __table_args__ = (
        Index('idx_process_company', 'company_id'),
        {'comment': 'Processes, keyed by process code'}
    )

    process_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    process_code = Column(String(64), nullable=False, unique=True)
    process_name = Column(String(255), nullable=False)
    company_id = Column(
        Integer,
        ForeignKey('company.company_id', ondelete='CASCADE'),
        nullable=False
    )
    process_overview = Column(Text, nullable=True)

    company = relationship('Company', back_populates='processes')
    task_links = relationship(
        'ProcessTask',
        back_populates='process',
        cascade='all, delete-orphan',
        order_by='ProcessTask.order'
    )

    def __repr__(self):
        return f"<Process(id={self.process_id}, code='{self.process_code}')>"


class ProcessTask(Base):
    """Task ↔ Process link with the task's position in the process."""

    __tablename__ = 'process_task'

    process_id = Column(
        Integer,
        ForeignKey('process.process_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    task_id = Column(
        Integer,
        ForeignKey('task.task_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    order = Column(Integer, nullable=False, server_default='0')

    process = relationship('Process', back_populates='task_links')
    task = relationship('Task', back_populates='process_links')


class JobTask(Base):
    """Job ↔ Task link."""

    __tablename__ = 'job_task'

    job_id = Column(
        Integer,
        ForeignKey('job.job_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )
    task_id = Column(
        Integer,
        ForeignKey('task.task_id', ondelete='CASCADE'),
        primary_key=True,
        nullable=False
    )

    job = relationship('Job', back_populates='task_links')
    task = relationship('Task', back_populates='job_links')


class People(Base):
    """Person employed by a company, optionally holding a job."""

    __tablename__ = 'people'
    __table_args__ = (
        Index('idx_people_company', 'company_id'),
        Index('idx_people_job', 'job_id'),
        {'comment': 'People, keyed by email'}
    )

    people_id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    people_name = Column(String(255), nullable=False)
    people_surname = Column(String(255), nullable=True)
    people_email = Column(String(255), nullable=False, unique=True)
    people_phone = Column(String(64), nullable=True)
    company_id = Column(
        Integer,
        ForeignKey('company.company_id', ondelete='CASCADE'),
        nullable=False
    )
    job_id = Column(
        Integer,
        ForeignKey('job.job_id', ondelete='SET NULL'),
        nullable=True
    )
    is_manager = Column(Boolean, server_default='false', nullable=False)

    company = relationship('Company', back_populates='people')
    job = relationship('Job', back_populates='people')

    def __repr__(self):
        return f"<People(id={self.people_id}, email='{self.people_email}')>"
