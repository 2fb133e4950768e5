import asyncio

import pytest

from souq.database import (
    CATEGORIES, PRODUCTS, USERS, DuplicateKeyError, LockNotHeldError, create_store, lock_key,
)


def test_insert_stamps_and_copies():
    store = create_store()

    async def scenario():
        doc = {"name": {"en": "A"}, "stock": 1}
        saved = await store.insert_one(PRODUCTS, doc)
        assert saved["id"] and saved["created_at"] == saved["updated_at"]
        assert "id" not in doc

        saved["stock"] = 99
        fresh = await store.get(PRODUCTS, saved["id"])
        assert fresh["stock"] == 1

    asyncio.run(scenario())


def test_unique_index():
    store = create_store()

    async def scenario():
        await store.insert_one(USERS, {"email": "a@example.com"})
        with pytest.raises(DuplicateKeyError) as exc:
            await store.insert_one(USERS, {"email": "a@example.com"})
        assert exc.value.field == "email"
        # None values are not indexed
        await store.insert_one(CATEGORIES, {"slug": None})
        await store.insert_one(CATEGORIES, {"slug": None})

    asyncio.run(scenario())


def test_find_filters_sorts_and_pages():
    store = create_store()

    async def scenario():
        for n, price in enumerate([30, 10, None, 20]):
            await store.insert_one(PRODUCTS, {"sku": f"S{n}", "price": price, "name": {"en": f"P{n}"}, "active": n != 3})

        ordered = await store.find(PRODUCTS, sort=[("price", 1)])
        assert [p["price"] for p in ordered] == [None, 10, 20, 30]

        desc = await store.find(PRODUCTS, {"active": True}, sort=[("price", -1)], skip=1, limit=1)
        assert [p["price"] for p in desc] == [10]

        cheap = await store.find(PRODUCTS, where=lambda p: (p["price"] or 0) < 25)
        assert len(cheap) == 3
        assert await store.count(PRODUCTS, {"name.en": "P1"}) == 1

    asyncio.run(scenario())


def test_transaction_commits_together():
    store = create_store()

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 5})
        b = await store.insert_one(PRODUCTS, {"sku": "B", "stock": 5})
        async with store.transaction(lock_key(PRODUCTS, a["id"]), lock_key(PRODUCTS, b["id"])) as tx:
            await tx.update_one(PRODUCTS, a["id"], {"stock": 4})
            assert (await tx.get(PRODUCTS, a["id"]))["stock"] == 4
            # committed state is untouched until exit
            assert (await store.get(PRODUCTS, a["id"]))["stock"] == 5
            await tx.update_one(PRODUCTS, b["id"], {"stock": 3})
        assert tx.committed
        assert (await store.get(PRODUCTS, a["id"]))["stock"] == 4
        assert (await store.get(PRODUCTS, b["id"]))["stock"] == 3

    asyncio.run(scenario())


def test_transaction_rolls_back_on_error():
    store = create_store()

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 5})
        with pytest.raises(ValueError):
            async with store.transaction(lock_key(PRODUCTS, a["id"])) as tx:
                await tx.update_one(PRODUCTS, a["id"], {"stock": 0})
                await tx.insert_one(PRODUCTS, {"sku": "NEW"})
                raise ValueError("boom")
        assert not tx.committed
        assert (await store.get(PRODUCTS, a["id"]))["stock"] == 5
        assert await store.count(PRODUCTS) == 1
        # locks are released and forgotten after a rollback
        assert store._locks == {}

    asyncio.run(scenario())


def test_transaction_requires_lock_for_updates():
    store = create_store()

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 5})
        async with store.transaction() as tx:
            with pytest.raises(LockNotHeldError):
                await tx.update_one(PRODUCTS, a["id"], {"stock": 1})
            await tx.lock(PRODUCTS, a["id"])
            assert tx.holds(PRODUCTS, a["id"])
            await tx.update_one(PRODUCTS, a["id"], {"stock": 1})
        assert (await store.get(PRODUCTS, a["id"]))["stock"] == 1

    asyncio.run(scenario())


def test_transaction_unique_check_at_insert():
    store = create_store()

    async def scenario():
        await store.insert_one(PRODUCTS, {"sku": "A"})
        async with store.transaction() as tx:
            with pytest.raises(DuplicateKeyError):
                await tx.insert_one(PRODUCTS, {"sku": "A"})
            await tx.insert_one(PRODUCTS, {"sku": "B"})
        assert await store.count(PRODUCTS) == 2

    asyncio.run(scenario())


def test_transaction_keeps_fields_written_outside_it():
    store = create_store()

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 5, "price": 10, "is_active": True})
        async with store.transaction(lock_key(PRODUCTS, a["id"])) as tx:
            await tx.update_one(PRODUCTS, a["id"], {"stock": 4})
            # unlocked single-document writes landing mid-transaction
            await store.update_one(PRODUCTS, a["id"], {"is_active": False})
            await store.update_one(PRODUCTS, a["id"], {"price": 12})
            seen = await tx.get(PRODUCTS, a["id"])
            assert seen["stock"] == 4 and seen["price"] == 12
        doc = await store.get(PRODUCTS, a["id"])
        assert doc["stock"] == 4
        assert doc["is_active"] is False
        assert doc["price"] == 12

    asyncio.run(scenario())


def test_locks_are_forgotten_after_use():
    store = create_store()

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 5})
        async with store.transaction(lock_key(PRODUCTS, a["id"])) as tx:
            await tx.update_one(PRODUCTS, a["id"], {"stock": 4})
            await tx.lock(PRODUCTS, "missing")
            assert len(store._locks) == 2
        for n in range(50):
            async with store.transaction(lock_key(PRODUCTS, f"missing-{n}")):
                pass
        assert store._locks == {}
        assert store._lock_users == {}

    asyncio.run(scenario())


def test_waiting_transaction_keeps_the_lock_alive():
    store = create_store()

    async def bump(doc_id):
        async with store.transaction(lock_key(PRODUCTS, doc_id)) as tx:
            current = await tx.get(PRODUCTS, doc_id)
            await tx.update_one(PRODUCTS, doc_id, {"stock": current["stock"] + 1})

    async def scenario():
        a = await store.insert_one(PRODUCTS, {"sku": "A", "stock": 0})
        await asyncio.gather(*[bump(a["id"]) for _ in range(10)])
        assert (await store.get(PRODUCTS, a["id"]))["stock"] == 10
        assert store._locks == {}

    asyncio.run(scenario())
