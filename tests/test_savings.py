"""Tests for savings goals."""

from datetime import date

import pytest

from conftest import OTHER_USER, USER, events_of
from walletledger.ledger import InvalidAmountError, NotFoundError, progress
from walletledger.models.audit import AuditEventType


class TestSavingsGoals:

    @pytest.mark.asyncio
    async def test_create_with_defaults(self, app):
        goal = await app.savings.create_goal(USER, "Holiday", 5000000, deadline=date(2025, 1, 1))
        assert goal.current_amount == 0
        assert goal.icon == "target"
        assert progress(goal) == 0

    @pytest.mark.asyncio
    async def test_contributions_accumulate(self, app, audit_storage):
        goal = await app.savings.create_goal(USER, "Holiday", 1000)
        await app.savings.contribute(USER, goal.id, 250)
        goal = await app.savings.contribute(USER, goal.id, 500)

        assert goal.current_amount == 750
        assert progress(goal) == 75
        events = await events_of(audit_storage, AuditEventType.GOAL_CONTRIBUTION)
        assert [e.details["current_amount"] for e in events] == [250, 750]

    @pytest.mark.asyncio
    async def test_progress_caps_at_100(self, app):
        goal = await app.savings.create_goal(USER, "Laptop", 1000, current_amount=900)
        goal = await app.savings.contribute(USER, goal.id, 500)
        assert goal.current_amount == 1400
        assert progress(goal) == 100
        assert goal.is_reached

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_contribution_must_be_positive(self, app, amount):
        goal = await app.savings.create_goal(USER, "Holiday", 1000)
        with pytest.raises(InvalidAmountError):
            await app.savings.contribute(USER, goal.id, amount)

    @pytest.mark.asyncio
    async def test_update_is_partial(self, app):
        goal = await app.savings.create_goal(USER, "Holiday", 1000, color="#123456")
        updated = await app.savings.update_goal(USER, goal.id, {"target_amount": 2000})
        assert updated.target_amount == 2000
        assert updated.name == "Holiday"
        assert updated.color == "#123456"

    @pytest.mark.asyncio
    async def test_list_and_delete_are_owner_scoped(self, app):
        mine = await app.savings.create_goal(USER, "Mine", 100)
        theirs = await app.savings.create_goal(OTHER_USER, "Theirs", 100)

        assert [g.id for g in await app.savings.list_goals(USER)] == [mine.id]
        with pytest.raises(NotFoundError):
            await app.savings.delete_goal(USER, theirs.id)

        await app.savings.delete_goal(USER, mine.id)
        assert await app.savings.list_goals(USER) == []
