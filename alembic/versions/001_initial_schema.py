"""Initial schema for the organization store

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-10-14

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

LEVEL_NAME_CHECK = "level_name IN ('NOVICE', 'INTERMEDIATE', 'PROFICIENT', 'ADVANCED', 'EXPERT')"


def upgrade() -> None:
    # Create company table
    op.create_table(
        'company',
        sa.Column('company_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_code', sa.String(length=64), nullable=False,
                  comment='Natural key used by workbook sheets'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('company_id'),
        sa.UniqueConstraint('company_code'),
        comment='Organizations, keyed by company code'
    )

    # Create function table (self-referencing parent)
    op.create_table(
        'function',
        sa.Column('function_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('function_code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('background_color', sa.String(length=32), nullable=True),
        sa.Column('parent_function_id', sa.Integer(), nullable=True),
        sa.Column('overview', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['company.company_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_function_id'], ['function.function_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('function_id'),
        sa.UniqueConstraint('function_code'),
        comment='Functions (departments), keyed by function code'
    )
    op.create_index('idx_function_company', 'function', ['company_id'])

    # Create level dictionaries
    for table_name in ('job_level', 'skill_level'):
        op.create_table(
            table_name,
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('level_name', sa.String(length=20), nullable=False),
            sa.Column('level_rank', sa.Integer(), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.CheckConstraint(LEVEL_NAME_CHECK, name=f'{table_name}_level_name_check'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('level_rank'),
        )

    # Create skill dictionary
    op.create_table(
        'skill',
        sa.Column('skill_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint('skill_id'),
        sa.UniqueConstraint('name'),
    )

    # Create job table
    op.create_table(
        'job',
        sa.Column('job_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('function_id', sa.Integer(), nullable=False),
        sa.Column('job_level_id', sa.Integer(), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('max_hours_per_day', sa.Numeric(precision=5, scale=2), server_default='8', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('overview', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['company.company_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['function_id'], ['function.function_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_level_id'], ['job_level.id']),
        sa.PrimaryKeyConstraint('job_id'),
        sa.UniqueConstraint('job_code'),
        comment='Jobs, keyed by job code'
    )
    op.create_index('idx_job_company', 'job', ['company_id'])
    op.create_index('idx_job_function', 'job', ['function_id'])

    op.create_table(
        'job_skill',
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('skill_id', sa.Integer(), nullable=False),
        sa.Column('skill_level_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['job.job_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_id'], ['skill.skill_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_level_id'], ['skill_level.id']),
        sa.PrimaryKeyConstraint('job_id', 'skill_id'),
    )

    # Create task table
    op.create_table(
        'task',
        sa.Column('task_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_code', sa.String(length=64), nullable=False),
        sa.Column('task_name', sa.String(length=255), nullable=False),
        sa.Column('task_company_id', sa.Integer(), nullable=False),
        sa.Column('task_capacity_minutes', sa.Integer(), server_default='0', nullable=False),
        sa.Column('task_overview', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['task_company_id'], ['company.company_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('task_id'),
        sa.UniqueConstraint('task_code'),
        comment='Tasks, keyed by task code'
    )
    op.create_index('idx_task_company', 'task', ['task_company_id'])

    op.create_table(
        'task_skill',
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('skill_id', sa.Integer(), nullable=False),
        sa.Column('skill_level_id', sa.Integer(), nullable=False),
        sa.Column('skill_name', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['task_id'], ['task.task_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_id'], ['skill.skill_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_level_id'], ['skill_level.id']),
        sa.PrimaryKeyConstraint('task_id', 'skill_id'),
    )

    # Create process table
    op.create_table(
        'process',
        sa.Column('process_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('process_code', sa.String(length=64), nullable=False),
        sa.Column('process_name', sa.String(length=255), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('process_overview', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['company.company_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('process_id'),
        sa.UniqueConstraint('process_code'),
        comment='Processes, keyed by process code'
    )
    op.create_index('idx_process_company', 'process', ['company_id'])

    # Create junction tables
    op.create_table(
        'process_task',
        sa.Column('process_id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['process_id'], ['process.process_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['task_id'], ['task.task_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('process_id', 'task_id'),
    )

    op.create_table(
        'job_task',
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['job.job_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['task_id'], ['task.task_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('job_id', 'task_id'),
    )

    # Create people table
    op.create_table(
        'people',
        sa.Column('people_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('people_name', sa.String(length=255), nullable=False),
        sa.Column('people_surname', sa.String(length=255), nullable=True),
        sa.Column('people_email', sa.String(length=255), nullable=False),
        sa.Column('people_phone', sa.String(length=64), nullable=True),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=True),
        sa.Column('is_manager', sa.Boolean(), server_default='false', nullable=False),
        sa.ForeignKeyConstraint(['company_id'], ['company.company_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_id'], ['job.job_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('people_id'),
        sa.UniqueConstraint('people_email'),
        comment='People, keyed by email'
    )
    op.create_index('idx_people_company', 'people', ['company_id'])
    op.create_index('idx_people_job', 'people', ['job_id'])


def downgrade() -> None:
    op.drop_index('idx_people_job', table_name='people')
    op.drop_index('idx_people_company', table_name='people')
    op.drop_table('people')
    op.drop_table('job_task')
    op.drop_table('process_task')
    op.drop_index('idx_process_company', table_name='process')
    op.drop_table('process')
    op.drop_table('task_skill')
    op.drop_index('idx_task_company', table_name='task')
    op.drop_table('task')
    op.drop_table('job_skill')
    op.drop_index('idx_job_function', table_name='job')
    op.drop_index('idx_job_company', table_name='job')
    op.drop_table('job')
    op.drop_table('skill')
    op.drop_table('skill_level')
    op.drop_table('job_level')
    op.drop_index('idx_function_company', table_name='function')
    op.drop_table('function')
    op.drop_table('company')
