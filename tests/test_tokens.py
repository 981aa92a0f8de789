"""Tests for admission and token validation."""

import asyncio

import pytest

from errors import RoomFullError, RoomNotFoundError, UnauthorizedError
from tokens import AccessTokenIssuer


class TestAdmit:
    @pytest.mark.asyncio
    async def test_admit_mints_token_and_records_membership(self, registry, issuer):
        room_id = await registry.create_room()

        token = await issuer.admit(room_id)

        room = await registry.get_room(room_id)
        assert token
        assert room.connected == [token]

    @pytest.mark.asyncio
    async def test_admit_unknown_room_raises_not_found(self, issuer):
        with pytest.raises(RoomNotFoundError):
            await issuer.admit("missing")

    @pytest.mark.asyncio
    async def test_admit_expired_room_raises_not_found(self, registry, issuer, clock):
        room_id = await registry.create_room()
        clock.advance(601)

        with pytest.raises(RoomNotFoundError):
            await issuer.admit(room_id)

    @pytest.mark.asyncio
    async def test_third_participant_is_rejected(self, registry, issuer):
        room_id = await registry.create_room()
        first = await issuer.admit(room_id)
        second = await issuer.admit(room_id)

        with pytest.raises(RoomFullError):
            await issuer.admit(room_id)

        room = await registry.get_room(room_id)
        assert room.connected == [first, second]

    @pytest.mark.asyncio
    async def test_readmitting_member_is_idempotent(self, registry, issuer):
        room_id = await registry.create_room()
        token = await issuer.admit(room_id)

        for _ in range(3):
            assert await issuer.admit(room_id, token) == token

        room = await registry.get_room(room_id)
        assert room.member_count == 1

    @pytest.mark.asyncio
    async def test_member_can_reenter_full_room(self, registry, issuer):
        room_id = await registry.create_room()
        first = await issuer.admit(room_id)
        await issuer.admit(room_id)

        assert await issuer.admit(room_id, first) == first

    @pytest.mark.asyncio
    async def test_token_from_other_room_gets_fresh_token(self, registry, issuer):
        room_a = await registry.create_room()
        room_b = await registry.create_room()
        token_a = await issuer.admit(room_a)

        token_b = await issuer.admit(room_b, token_a)

        assert token_b != token_a
        assert (await registry.get_room(room_b)).connected == [token_b]

    @pytest.mark.asyncio
    async def test_concurrent_admissions_never_exceed_capacity(self, registry, issuer):
        room_id = await registry.create_room()

        results = await asyncio.gather(
            *(issuer.admit(room_id) for _ in range(10)), return_exceptions=True
        )

        admitted = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, RoomFullError)]
        assert len(admitted) == 2
        assert len(rejected) == 8
        assert (await registry.get_room(room_id)).member_count == 2

    @pytest.mark.asyncio
    async def test_race_on_last_free_slot_has_one_winner(self, registry, backend):
        issuer = AccessTokenIssuer(backend, max_members=3)
        room_id = await registry.create_room()
        await issuer.admit(room_id)
        await issuer.admit(room_id)

        results = await asyncio.gather(
            *(issuer.admit(room_id) for _ in range(5)), return_exceptions=True
        )

        assert sum(isinstance(r, str) for r in results) == 1
        assert (await registry.get_room(room_id)).member_count == 3

    @pytest.mark.asyncio
    async def test_max_members_is_configurable(self, registry, backend):
        issuer = AccessTokenIssuer(backend, max_members=1)
        room_id = await registry.create_room()
        await issuer.admit(room_id)

        with pytest.raises(RoomFullError):
            await issuer.admit(room_id)


class TestValidate:
    @pytest.mark.asyncio
    async def test_validate_returns_connected_tokens(self, registry, issuer):
        room_id = await registry.create_room()
        first = await issuer.admit(room_id)
        second = await issuer.admit(room_id)

        assert await issuer.validate(room_id, first) == [first, second]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("room_id,token", [(None, "t"), ("r", None), ("", ""), (None, None)])
    async def test_validate_requires_room_and_token(self, issuer, room_id, token):
        with pytest.raises(UnauthorizedError):
            await issuer.validate(room_id, token)

    @pytest.mark.asyncio
    async def test_validate_rejects_non_member(self, registry, issuer):
        room_id = await registry.create_room()
        await issuer.admit(room_id)

        with pytest.raises(UnauthorizedError):
            await issuer.validate(room_id, "not-a-member")

    @pytest.mark.asyncio
    async def test_token_is_scoped_to_its_room(self, registry, issuer):
        room_a = await registry.create_room()
        room_b = await registry.create_room()
        token_a = await issuer.admit(room_a)
        await issuer.admit(room_b)

        with pytest.raises(UnauthorizedError):
            await issuer.validate(room_b, token_a)

    @pytest.mark.asyncio
    async def test_token_unusable_once_room_expires(self, registry, issuer, clock):
        room_id = await registry.create_room()
        token = await issuer.admit(room_id)
        clock.advance(600)

        with pytest.raises(UnauthorizedError):
            await issuer.validate(room_id, token)
