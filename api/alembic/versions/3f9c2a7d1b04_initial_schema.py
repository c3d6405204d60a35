"""Initial schema: leads, campaigns, experiments, event ledger, scoring

Revision ID: 3f9c2a7d1b04
Revises:
Create Date: 2026-10-16 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONB = postgresql.JSONB(astext_type=sa.Text())

EXPERIMENT_STATUS = sa.Enum('draft', 'running', 'paused', 'completed', 'cancelled', name='experimentstatus')
EVENT_KIND = sa.Enum('assigned', 'impression', 'click', 'conversion', 'revenue', name='eventkind')
EXECUTION_STATUS = sa.Enum(
    'pending', 'sent', 'delivered', 'opened', 'clicked', 'replied', 'bounced', 'failed', 'converted',
    name='executionstatus',
)
EMAIL_EVENT_KIND = sa.Enum(
    'delivered', 'opened', 'clicked', 'replied', 'bounced', 'unsubscribed', 'converted',
    name='emaileventkind',
)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    # Leads
    op.create_table('leads',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=255), nullable=True),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('job_title', sa.String(length=255), nullable=True),
        sa.Column('industry', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('linkedin_url', sa.String(length=512), nullable=True),
        sa.Column('website', sa.String(length=512), nullable=True),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=64), nullable=False),
        sa.Column('enriched_data', JSONB, nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_leads_email'), 'leads', ['email'], unique=True)
    op.create_index(op.f('ix_leads_status'), 'leads', ['status'], unique=False)

    op.create_table('lead_activities',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('lead_id', sa.UUID(), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', JSONB, nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_lead_activities_lead_id'), 'lead_activities', ['lead_id'], unique=False)

    op.create_table('form_submissions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('lead_id', sa.UUID(), nullable=False),
        sa.Column('form_name', sa.String(length=255), nullable=True),
        sa.Column('payload', JSONB, nullable=True),
        sa.Column('page_views', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id'),
    )

    # Campaigns
    op.create_table('campaigns',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('campaign_executions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('campaign_id', sa.UUID(), nullable=False),
        sa.Column('lead_id', sa.UUID(), nullable=False),
        sa.Column('status', EXECUTION_STATUS, nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('clicked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('replied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revenue', sa.Float(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_campaign_executions_campaign_id'), 'campaign_executions', ['campaign_id'], unique=False)
    op.create_index(op.f('ix_campaign_executions_lead_id'), 'campaign_executions', ['lead_id'], unique=False)

    op.create_table('email_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('execution_id', sa.UUID(), nullable=False),
        sa.Column('kind', EMAIL_EVENT_KIND, nullable=False),
        sa.Column('metadata', JSONB, nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['execution_id'], ['campaign_executions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_email_events_execution_id'), 'email_events', ['execution_id'], unique=False)

    op.create_table('campaign_analytics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('campaign_id', sa.UUID(), nullable=False),
        *[
            sa.Column(name, sa.Integer(), nullable=False)
            for name in (
                'total_sent', 'total_delivered', 'total_opened', 'total_clicked',
                'total_replied', 'total_bounced', 'total_unsubscribed', 'total_converted',
            )
        ],
        *[
            sa.Column(name, sa.Float(), nullable=False)
            for name in (
                'total_revenue', 'delivery_rate', 'open_rate', 'click_rate', 'reply_rate',
                'bounce_rate', 'unsubscribe_rate', 'conversion_rate', 'avg_revenue_per_conversion',
            )
        ],
        sa.Column('last_calculated', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id'),
    )

    # Experiments
    op.create_table('experiments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('campaign_id', sa.UUID(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('test_type', sa.String(length=50), nullable=False),
        sa.Column('status', EXPERIMENT_STATUS, nullable=False),
        sa.Column('confidence_level', sa.Float(), nullable=False),
        sa.Column('min_sample_size', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('winning_variant_id', sa.UUID(), nullable=True),
        sa.Column('significance', sa.Float(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_experiments_campaign_id'), 'experiments', ['campaign_id'], unique=False)

    op.create_table('experiment_variants',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('experiment_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('content', JSONB, nullable=True),
        sa.Column('traffic_percent', sa.Float(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('revenue', sa.Float(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['experiment_id'], ['experiments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('experiment_id', 'name', name='uq_variant_experiment_name'),
    )
    op.create_index(op.f('ix_experiment_variants_experiment_id'), 'experiment_variants', ['experiment_id'], unique=False)

    op.create_table('experiment_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('experiment_id', sa.UUID(), nullable=False),
        sa.Column('variant_id', sa.UUID(), nullable=False),
        sa.Column('subject_id', sa.String(length=255), nullable=False),
        sa.Column('kind', EVENT_KIND, nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['experiment_id'], ['experiments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['experiment_variants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_experiment_events_experiment_id'), 'experiment_events', ['experiment_id'], unique=False)
    op.create_index(op.f('ix_experiment_events_variant_id'), 'experiment_events', ['variant_id'], unique=False)
    op.create_index(op.f('ix_experiment_events_subject_id'), 'experiment_events', ['subject_id'], unique=False)
    op.create_index(
        'uq_experiment_events_assignment',
        'experiment_events',
        ['experiment_id', 'subject_id'],
        unique=True,
        postgresql_where=sa.text("kind = 'assigned'"),
    )

    op.create_table('experiment_results',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('experiment_id', sa.UUID(), nullable=False),
        sa.Column('snapshot', JSONB, nullable=False),
        sa.Column('winning_variant_id', sa.UUID(), nullable=True),
        sa.Column('significance', sa.Float(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['experiment_id'], ['experiments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('experiment_id', name='uq_experiment_results_experiment_id'),
    )

    # Scoring
    op.create_table('scoring_algorithms',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.String(length=32), nullable=False),
        sa.Column('algorithm_type', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('weights', JSONB, nullable=False),
        sa.Column('thresholds', JSONB, nullable=False),
        sa.Column('confidence_multiplier', sa.Float(), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=True),
        sa.Column('precision', sa.Float(), nullable=True),
        sa.Column('recall', sa.Float(), nullable=True),
        sa.Column('f1_score', sa.Float(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table('scoring_results',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('lead_id', sa.UUID(), nullable=False),
        sa.Column('algorithm_id', sa.UUID(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('features', JSONB, nullable=False),
        sa.Column('explanation', JSONB, nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['algorithm_id'], ['scoring_algorithms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', 'algorithm_id', name='uq_scoring_result_lead_algorithm'),
    )
    op.create_index(op.f('ix_scoring_results_lead_id'), 'scoring_results', ['lead_id'], unique=False)
    op.create_index(op.f('ix_scoring_results_algorithm_id'), 'scoring_results', ['algorithm_id'], unique=False)


def downgrade() -> None:
    op.drop_table('scoring_results')
    op.drop_table('scoring_algorithms')
    op.drop_table('experiment_results')
    op.drop_index('uq_experiment_events_assignment', table_name='experiment_events')
    op.drop_table('experiment_events')
    op.drop_table('experiment_variants')
    op.drop_table('experiments')
    op.drop_table('campaign_analytics')
    op.drop_table('email_events')
    op.drop_table('campaign_executions')
    op.drop_table('campaigns')
    op.drop_table('form_submissions')
    op.drop_table('lead_activities')
    op.drop_table('leads')
    for enum in (EMAIL_EVENT_KIND, EXECUTION_STATUS, EVENT_KIND, EXPERIMENT_STATUS):
        enum.drop(op.get_bind(), checkfirst=True)
