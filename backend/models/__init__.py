"""Models package for the organization store."""
from backend.models.schema import (
    Base, LevelName, LEVEL_NAMES_BY_RANK, Company, Function, JobLevel, SkillLevel,
    Skill, Job, JobSkill, Task, TaskSkill, Process, ProcessTask, JobTask, People
)
from backend.models.job import JobRun, JobProgress, JobStatus, JobType

__all__ = [
    'Base', 'LevelName', 'LEVEL_NAMES_BY_RANK',
    'Company', 'Function', 'JobLevel', 'SkillLevel', 'Skill',
    'Job', 'JobSkill', 'Task', 'TaskSkill', 'Process', 'ProcessTask', 'JobTask', 'People',
    'JobRun', 'JobProgress', 'JobStatus', 'JobType',
]
