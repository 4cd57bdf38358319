"""Initial AgriAdvisor schema

Revision ID: 2026_10_01_0001
Revises: 
Create Date: 2026-10-01 00:01:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import JSON

# revision identifiers, used by Alembic.
revision: str = '2026_10_01_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial schema for AgriAdvisor"""

    op.create_table('users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(200), nullable=False, unique=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('address', sa.String(300), nullable=True),
        sa.Column('farm_details', JSON(), nullable=True),
        sa.Column('preferences', JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('last_sync', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now())
    )
    op.create_index('idx_users_location', 'users', ['latitude', 'longitude'])

    op.create_table('crop_diagnoses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('disease', sa.String(200), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('severity', sa.String(10), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('symptoms', JSON(), default=list),
        sa.Column('treatments', JSON(), default=list),
        sa.Column('prevention', JSON(), default=list),
        sa.Column('organic_treatments', JSON(), default=list),
        sa.Column('crop', sa.String(100), nullable=False, default='unknown'),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('address', sa.String(300), nullable=True),
        sa.Column('weather', JSON(), nullable=True),
        sa.Column('image', JSON(), nullable=True),
        sa.Column('is_offline', sa.Boolean(), nullable=False, default=False),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('model_version', sa.String(50), nullable=True),
        sa.Column('feedback', JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'created_at', 'disease', name='uq_diagnosis_dedup')
    )
    op.create_index('ix_crop_diagnoses_disease', 'crop_diagnoses', ['disease'])
    op.create_index('ix_crop_diagnoses_crop', 'crop_diagnoses', ['crop'])
    op.create_index('idx_diagnosis_user_created', 'crop_diagnoses', ['user_id', 'created_at'])

    op.create_table('disease_outbreaks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('disease', sa.String(200), nullable=False),
        sa.Column('crop', sa.String(100), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('address', sa.String(300), nullable=False),
        sa.Column('region', sa.String(100), nullable=False),
        sa.Column('district', sa.String(100), nullable=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('country', sa.String(100), default='India'),
        sa.Column('severity', sa.String(10), nullable=False, default='medium'),
        sa.Column('status', sa.String(10), nullable=False, default='active'),
        sa.Column('affected_area', sa.Float(), nullable=False, default=0.0),
        sa.Column('confirmed_cases', sa.Integer(), nullable=False, default=0),
        sa.Column('cluster_key', sa.String(300), nullable=True, unique=True),
        sa.Column('prevention_measures', JSON(), default=list),
        sa.Column('is_verified', sa.Boolean(), default=False),
        sa.Column('verified_by', sa.String(36), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('first_reported', sa.DateTime(), default=sa.func.now()),
        sa.Column('last_updated', sa.DateTime(), default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now())
    )
    op.create_index('ix_disease_outbreaks_region', 'disease_outbreaks', ['region'])
    op.create_index('idx_outbreak_location', 'disease_outbreaks', ['latitude', 'longitude'])
    op.create_index('idx_outbreak_disease_crop', 'disease_outbreaks', ['disease', 'crop'])
    op.create_index('idx_outbreak_region_status', 'disease_outbreaks', ['region', 'status'])

    op.create_table('outbreak_reports',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('outbreak_id', sa.String(36), sa.ForeignKey('disease_outbreaks.id'), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('reported_at', sa.DateTime(), nullable=False),
        sa.Column('severity', sa.String(10), nullable=False, default='medium'),
        sa.Column('affected_area', sa.Float(), nullable=False, default=0.0),
        sa.Column('images', JSON(), default=list),
        sa.Column('notes', sa.Text(), default='')
    )
    op.create_index('ix_outbreak_reports_outbreak_id', 'outbreak_reports', ['outbreak_id'])

    op.create_table('treatment_recommendations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('outbreak_id', sa.String(36), sa.ForeignKey('disease_outbreaks.id'), nullable=False),
        sa.Column('treatment', sa.Text(), nullable=False),
        sa.Column('dosage', sa.String(200), nullable=True),
        sa.Column('frequency', sa.String(200), nullable=True),
        sa.Column('duration', sa.String(200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recommended_by', sa.String(36), nullable=True),
        sa.Column('recommended_at', sa.DateTime(), default=sa.func.now())
    )
    op.create_index('ix_treatment_recommendations_outbreak_id', 'treatment_recommendations', ['outbreak_id'])

    op.create_table('outbreak_alerts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('outbreak_id', sa.String(36), sa.ForeignKey('disease_outbreaks.id'), nullable=False),
        sa.Column('alert_type', sa.String(10), nullable=False, default='app'),
        sa.Column('recipients', sa.Integer(), nullable=False, default=0),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), default=sa.func.now())
    )
    op.create_index('ix_outbreak_alerts_outbreak_id', 'outbreak_alerts', ['outbreak_id'])

    op.create_table('analytics_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('record_type', sa.String(20), nullable=False),
        sa.Column('event_time', sa.DateTime(), nullable=False),
        sa.Column('data', JSON(), default=dict),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now())
    )
    op.create_index('ix_analytics_log_user_id', 'analytics_log', ['user_id'])
    op.create_index('ix_analytics_log_record_type', 'analytics_log', ['record_type'])


def downgrade() -> None:
    """Drop AgriAdvisor schema"""
    op.drop_table('analytics_log')
    op.drop_table('outbreak_alerts')
    op.drop_table('treatment_recommendations')
    op.drop_table('outbreak_reports')
    op.drop_table('disease_outbreaks')
    op.drop_table('crop_diagnoses')
    op.drop_table('users')
