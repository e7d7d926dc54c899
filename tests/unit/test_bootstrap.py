# -*- coding: utf-8 -*-

"""
Unit tests for KickSessionBootstrapper.
Tests the channel -> chatroom lookup chain and the chatroom retry loop.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from songbridge.bootstrap import KickSessionBootstrapper
from songbridge.exceptions import ChannelLookupFailed, ChatroomLookupFailed
from songbridge.models import SessionIdentity


API_BASE = "https://api.kick.test"
CHATROOM_TEMPLATE = "https://kick.test/api/v1/{slug}/chatroom"

CHANNELS_BODY = {"data": [{"slug": "streamer", "broadcaster_user_id": 42}]}
CHATROOM_BODY = {"id": 1, "chatroom": {"id": 777}}


def kick_handler(channels=CHANNELS_BODY, chatroom_replies=None):
    """
    Builds a MockTransport handler for the channel and chatroom endpoints.

    chatroom_replies is consumed in order; the last reply repeats.
    """
    replies = list(chatroom_replies or [httpx.Response(200, json=CHATROOM_BODY)])

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/public/v1/channels":
            return httpx.Response(200, json=channels)
        if request.url.path == "/api/v1/streamer/chatroom":
            return replies.pop(0) if len(replies) > 1 else replies[0]
        return httpx.Response(404)

    return handler


def chatroom_requests(transport):
    return [r for r in transport.requests if r.url.path.endswith("/chatroom")]


def make_bootstrapper(client, attempts=3):
    return KickSessionBootstrapper(
        shared_client=client,
        api_base=API_BASE,
        chatroom_url_template=CHATROOM_TEMPLATE,
        attempts=attempts,
        retry_delay=0,
    )


class TestKickSessionBootstrapper:
    """Tests for bootstrap()."""

    @pytest.mark.asyncio
    async def test_resolves_identity(self, recording_transport):
        """
        What it does: Runs the chain against well-formed responses.
        Purpose: user id, username and chatroom id are resolved together.
        """
        transport = recording_transport(kick_handler())

        async with transport.client() as client:
            print("Action: Bootstrapping...")
            identity = await make_bootstrapper(client).bootstrap("AT1")

        print(f"Verification: {identity}...")
        assert identity == SessionIdentity(user_id="42", username="streamer", chatroom_id="777")
        assert transport.requests[0].headers["authorization"] == "Bearer AT1"
        assert str(transport.requests[1].url) == "https://kick.test/api/v1/streamer/chatroom"

    @pytest.mark.asyncio
    async def test_empty_channel_list_fails(self, recording_transport):
        """
        What it does: Channel list is empty.
        Purpose: ChannelLookupFailed, chatroom endpoint never called.
        """
        transport = recording_transport(kick_handler(channels={"data": []}))

        async with transport.client() as client:
            with pytest.raises(ChannelLookupFailed):
                await make_bootstrapper(client).bootstrap("AT1")

        assert chatroom_requests(transport) == []

    @pytest.mark.asyncio
    async def test_channel_without_slug_fails(self, recording_transport):
        transport = recording_transport(kick_handler(channels={"data": [{"broadcaster_user_id": 42}]}))

        async with transport.client() as client:
            with pytest.raises(ChannelLookupFailed):
                await make_bootstrapper(client).bootstrap("AT1")

    @pytest.mark.asyncio
    async def test_channel_error_status_fails(self, recording_transport):
        transport = recording_transport(lambda request: httpx.Response(401, json={"message": "Unauthorized"}))

        async with transport.client() as client:
            with pytest.raises(ChannelLookupFailed) as exc_info:
                await make_bootstrapper(client).bootstrap("AT1")

        assert "401" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_chatroom_lookup_is_retried(self, recording_transport):
        """
        What it does: Chatroom endpoint fails once, then answers.
        Purpose: A lagging chatroom endpoint does not fail the login.
        """
        transport = recording_transport(kick_handler(chatroom_replies=[
            httpx.Response(500),
            httpx.Response(200, json=CHATROOM_BODY),
        ]))

        async with transport.client() as client:
            identity = await make_bootstrapper(client).bootstrap("AT1")

        assert identity.chatroom_id == "777"
        assert len(chatroom_requests(transport)) == 2

    @pytest.mark.asyncio
    async def test_chatroom_lookup_gives_up_after_attempts(self, recording_transport):
        """
        What it does: Chatroom body never contains an id.
        Purpose: Exactly three attempts, then ChatroomLookupFailed.
        """
        transport = recording_transport(kick_handler(chatroom_replies=[httpx.Response(200, json={"chatroom": None})]))

        async with transport.client() as client:
            with pytest.raises(ChatroomLookupFailed):
                await make_bootstrapper(client).bootstrap("AT1")

        assert len(chatroom_requests(transport)) == 3

    @pytest.mark.asyncio
    async def test_sleeps_only_between_attempts(self, recording_transport):
        """
        What it does: Counts the delays of a fully failing chatroom lookup.
        Purpose: The delay separates attempts; there is none after the last.
        """
        transport = recording_transport(kick_handler(chatroom_replies=[httpx.Response(503)]))
        bootstrapper_sleep = AsyncMock()

        async with transport.client() as client:
            bootstrapper = make_bootstrapper(client)
            bootstrapper.retry_delay = 1.0
            with patch("songbridge.bootstrap.asyncio.sleep", bootstrapper_sleep):
                with pytest.raises(ChatroomLookupFailed):
                    await bootstrapper.bootstrap("AT1")

        assert bootstrapper_sleep.await_count == 2
        bootstrapper_sleep.assert_awaited_with(1.0)
