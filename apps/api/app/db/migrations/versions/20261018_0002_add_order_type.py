"""add orders.order_type

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 12:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0002"
down_revision: Union[str, None] = "20261018_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_type = sa.Enum("DELIVERY", "PICKUP", name="order_type")


def upgrade() -> None:
    bind = op.get_bind()
    order_type.create(bind, checkfirst=True)

    with op.batch_alter_table("orders") as batch_op:
        batch_op.add_column(
            sa.Column("order_type", order_type, nullable=False, server_default="DELIVERY")
        )


def downgrade() -> None:
    with op.batch_alter_table("orders") as batch_op:
        batch_op.drop_column("order_type")

    bind = op.get_bind()
    order_type.drop(bind, checkfirst=True)
