"""
Tests for shared card persistence and expiry.
"""

import re

import pytest

from controllers.share_controller import new_card_id
from dal.share_dal import ShareDAL
from models.share_record import SharedCardRecord
from utils.database_cleaner import DatabaseCleaner
from utils.database_init import AsyncDatabaseInitializer


@pytest.fixture
def db(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.mark.asyncio
async def test_created_card_can_be_read_back(db):
    dal = ShareDAL(db)
    record = SharedCardRecord(id="card_1_abcdefg", story_text="Dear Mom", child_name="Mom", created_at=1_000)

    stored = await dal.create_card(record, ttl_seconds=60)
    loaded = await dal.get_card("card_1_abcdefg", now=1_030)

    assert stored.expires_at == 1_060
    assert loaded == stored
    assert loaded.to_payload()["createdAt"] == "1970-01-01T00:16:40+00:00"


@pytest.mark.asyncio
async def test_expired_card_is_hidden_then_pruned(db):
    dal = ShareDAL(db)
    await dal.create_card(SharedCardRecord(id="old", story_text="x", created_at=1_000), ttl_seconds=60)
    await dal.create_card(SharedCardRecord(id="new", story_text="y", created_at=2_000), ttl_seconds=60)

    assert await dal.get_card("old", now=1_061) is None

    removed = await DatabaseCleaner(db).prune_expired_cards(now=1_061)

    assert removed == 1
    assert await dal.get_card("new", now=2_000) is not None


@pytest.mark.asyncio
async def test_cards_survive_a_new_initializer(tmp_path):
    first = AsyncDatabaseInitializer(tmp_path)
    await ShareDAL(first).create_card(SharedCardRecord(id="keep", story_text="x"), ttl_seconds=600)

    second = AsyncDatabaseInitializer(tmp_path)

    assert await ShareDAL(second).get_card("keep") is not None


def test_database_dir_must_not_be_a_file(tmp_path):
    target = tmp_path / "file.db"
    target.write_text("")

    with pytest.raises(RuntimeError):
        AsyncDatabaseInitializer(target)


def test_card_id_format():
    assert re.fullmatch(r"card_1700000000000_[0-9a-z]{7}", new_card_id(1_700_000_000_000))
