"""Tests for session helpers."""
import pytest
from sqlalchemy import func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.config.database import end_unchanged_transaction
from trainerhub.domains.trainers.models import Trainer


class TestEndUnchangedTransaction:
    @pytest.mark.asyncio
    async def test_keeps_loaded_objects(self, db_session: AsyncSession, sample_trainer):
        """Objects stay loaded when nothing was written."""
        await db_session.execute(select(Trainer).where(Trainer.id == sample_trainer.id))

        await end_unchanged_transaction(db_session)

        assert not inspect(sample_trainer).expired_attributes
        assert db_session.in_transaction() is False

    @pytest.mark.asyncio
    async def test_discards_pending_changes(self, db_session: AsyncSession):
        db_session.add(Trainer(name="Never Saved", email="ghost@example.com", specialization=[]))

        await end_unchanged_transaction(db_session)

        count = await db_session.scalar(select(func.count(Trainer.id)))
        assert count == 0
