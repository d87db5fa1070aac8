"""Tests for temporary upload tickets."""

import pytest

from gallery_manager.services.identity import RequestContext
from gallery_manager.services.tickets import image_ids_for_ticket, record_ticket, rotate_tickets


class TestTickets:
    async def test_lookup_by_index_token_and_session(self, session):
        context = RequestContext(session_id="s1", csrf_token="t1")
        await record_ticket(session, 10, "1", context)
        await record_ticket(session, 11, "1", context)
        await record_ticket(session, 12, "2", context)

        assert await image_ids_for_ticket(session, "1", context) == [10, 11]
        assert await image_ids_for_ticket(session, "2", context) == [12]

    async def test_other_session_sees_nothing(self, session):
        await record_ticket(session, 10, "1", RequestContext(session_id="s1", csrf_token="t1"))
        assert await image_ids_for_ticket(session, "1", RequestContext(session_id="s2", csrf_token="t1")) == []

    async def test_user_takes_precedence_over_session(self, session):
        await record_ticket(session, 10, "1", RequestContext(user_id="u1", session_id="s1", csrf_token="t1"))
        # a new session after login still finds the user's tickets
        context = RequestContext(user_id="u1", session_id="s9", csrf_token="t1")
        assert await image_ids_for_ticket(session, "1", context) == [10]

    async def test_rotation_keeps_link(self, session):
        context = RequestContext(session_id="s1", csrf_token="t1")
        await record_ticket(session, 10, "1", context)

        assert await rotate_tickets(session, "1", context, "t2") == 1

        assert await image_ids_for_ticket(session, "1", context) == []
        rotated = RequestContext(session_id="s1", csrf_token="t2")
        assert await image_ids_for_ticket(session, "1", rotated) == [10]

    async def test_record_requires_token(self, session):
        with pytest.raises(ValueError):
            await record_ticket(session, 10, "1", RequestContext(session_id="s1"))

    async def test_lookup_without_token(self, session):
        assert await image_ids_for_ticket(session, "1", RequestContext(session_id="s1")) == []
