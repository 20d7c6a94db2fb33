"""Create parcel search tables

Revision ID: 3c1a7e52d9b4
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1a7e52d9b4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('locations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('parent_id', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_locations_parent_id', 'locations', ['parent_id'], unique=False)

    op.create_table('features',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('properties',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('category', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('location_id', sa.String(length=64), nullable=True),
        sa.Column('area', sa.Float(), nullable=True),
        sa.Column('rooms', sa.Integer(), nullable=True),
        sa.Column('bathrooms', sa.Integer(), nullable=True),
        sa.Column('floor', sa.Integer(), nullable=True),
        sa.Column('build_year', sa.Integer(), nullable=True),
        sa.Column('has_balcony', sa.Boolean(), nullable=True),
        sa.Column('has_parking', sa.Boolean(), nullable=True),
        sa.Column('is_furnished', sa.Boolean(), nullable=True),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_properties_status_created', 'properties', ['status', 'created_at'], unique=False)
    op.create_index('idx_properties_price', 'properties', ['price'], unique=False)
    op.create_index('idx_properties_category', 'properties', ['category'], unique=False)
    op.create_index('idx_properties_location_id', 'properties', ['location_id'], unique=False)
    op.create_index('idx_properties_coordinates', 'properties', ['latitude', 'longitude'], unique=False)
    op.create_index('idx_properties_owner_id', 'properties', ['owner_id'], unique=False)

    # Radius queries build a geography from the coordinate columns
    op.execute('CREATE EXTENSION IF NOT EXISTS postgis')
    op.execute(
        'CREATE INDEX idx_properties_geography ON properties USING gist '
        '((ST_SetSRID(ST_MakePoint(longitude, latitude), 4326)::geography))'
    )

    op.create_table('property_features',
        sa.Column('property_id', sa.String(length=36), nullable=False),
        sa.Column('feature_id', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['feature_id'], ['features.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('property_id', 'feature_id')
    )
    op.create_index('idx_property_features_feature_id', 'property_features', ['feature_id'], unique=False)

    op.create_table('property_images',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('property_id', sa.String(length=36), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('saved_searches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_saved_searches_user_id', 'saved_searches', ['user_id'], unique=False)
    op.create_index('idx_saved_searches_active', 'saved_searches', ['is_active'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_saved_searches_active', table_name='saved_searches')
    op.drop_index('idx_saved_searches_user_id', table_name='saved_searches')
    op.drop_table('saved_searches')
    op.drop_table('property_images')
    op.drop_index('idx_property_features_feature_id', table_name='property_features')
    op.drop_table('property_features')
    op.execute('DROP INDEX IF EXISTS idx_properties_geography')
    op.drop_index('idx_properties_owner_id', table_name='properties')
    op.drop_index('idx_properties_coordinates', table_name='properties')
    op.drop_index('idx_properties_location_id', table_name='properties')
    op.drop_index('idx_properties_category', table_name='properties')
    op.drop_index('idx_properties_price', table_name='properties')
    op.drop_index('idx_properties_status_created', table_name='properties')
    op.drop_table('properties')
    op.drop_table('features')
    op.drop_index('idx_locations_parent_id', table_name='locations')
    op.drop_table('locations')
