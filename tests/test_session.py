"""Test suite for PaginatedCollectionSync.

Tests cover:
- Cursor-based pagination and exhaustion
- Id de-duplication and position stability of the view
- Local-first create/update with optional re-sorting
- Optimistic deletes whose failures do not restore the view
- Decode failure strategies and the error channel
- Owned listen subscriptions and session teardown

Requires pytest and pytest-asyncio.

"""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from f9_collection_sync import (
    DecodingFailureStrategy,
    InMemoryDocumentStore,
    InvalidArgumentError,
    PageDecodeError,
    PaginatedCollectionSync,
    Pagination,
    QueryPredicate,
    SortOrder,
    SyncState,
    TransportError,
)
from tests.fakes import (
    ErrorSink,
    FailingQueryStore,
    GatedDeleteStore,
    RecordingDocumentStore,
)

# ruff: noqa: S101, PLR2004


class Item(BaseModel):
    id: str | None = None
    seq: int
    label: str = ""


def seeded_items(count: int = 5) -> dict[str, dict[str, dict[str, object]]]:
    """Return ``count`` items with ids a, b, c, ... and increasing seq."""
    letters = "abcdefghijklmnopqrstuvwxyz"[:count]
    return {"items": {letter: {"seq": index} for index, letter in enumerate(letters)}}


def ids(session: PaginatedCollectionSync[Item]) -> list[str | None]:
    return [item.id for item in session]


@pytest.fixture
def store() -> RecordingDocumentStore:
    return RecordingDocumentStore(seeded_items())


@pytest.fixture
def session(store: RecordingDocumentStore) -> PaginatedCollectionSync[Item]:
    return PaginatedCollectionSync(
        store,
        "items",
        Item,
        pagination=Pagination(order_by="seq", limit=2),
    )


class TestPagination:
    """Forward pagination with a cursor."""

    @pytest.mark.asyncio
    async def test_walkthrough(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        """Five items, two per page, ordered by seq."""
        assert session.state is SyncState.IDLE
        assert session.cursor is None

        await session.fetch_next_page()
        assert ids(session) == ["a", "b"]
        assert session.cursor is not None
        assert session.cursor.id == "b"

        await session.fetch_next_page()
        assert ids(session) == ["a", "b", "c", "d"]
        assert session.cursor.id == "d"

        await session.fetch_next_page()
        assert ids(session) == ["a", "b", "c", "d", "e"]
        assert session.cursor.id == "e"
        assert not session.exhausted

        await session.fetch_next_page()
        assert ids(session) == ["a", "b", "c", "d", "e"]
        assert session.exhausted
        assert session.state is SyncState.EXHAUSTED
        assert len(store.query_calls) == 4

        view = await session.fetch_next_page()
        assert [item.id for item in view] == ["a", "b", "c", "d", "e"]
        assert len(store.query_calls) == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("count", "limit"), [(0, 2), (1, 1), (4, 2), (7, 3)])
    async def test_terminates_within_bound(self, count: int, limit: int) -> None:
        """Exhaustion is reached in at most ceil(N / limit) + 1 calls."""
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            InMemoryDocumentStore(seeded_items(count)),
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=limit),
        )
        bound = -(-count // limit) + 1
        calls = 0
        while not session.exhausted:
            await session.fetch_next_page()
            calls += 1
            assert calls <= bound
        assert len(session) == count

    @pytest.mark.asyncio
    async def test_cursor_is_the_last_raw_record(self) -> None:
        """Undecodable records still advance the cursor."""
        store = InMemoryDocumentStore(
            {"items": {"a": {"seq": 0}, "b": {"seq": 1, "label": 5}}},
        )
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            store,
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=2),
        )
        await session.fetch_next_page()
        assert ids(session) == ["a"]
        assert session.cursor is not None
        assert session.cursor.id == "b"

    @pytest.mark.asyncio
    async def test_filters_apply_to_every_page(self) -> None:
        store = InMemoryDocumentStore(
            {
                "items": {
                    "a": {"seq": 0, "label": "x"},
                    "b": {"seq": 1, "label": "y"},
                    "c": {"seq": 2, "label": "x"},
                },
            },
        )
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            store,
            "items",
            Item,
            predicates=[QueryPredicate.equals("label", "x")],
            pagination=Pagination(order_by="seq", limit=1),
        )
        await session.fetch_next_page()
        await session.fetch_next_page()
        assert ids(session) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_descending_pages(self) -> None:
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            InMemoryDocumentStore(seeded_items()),
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=3, descending=True),
        )
        await session.fetch_next_page()
        await session.fetch_next_page()
        assert ids(session) == ["e", "d", "c", "b", "a"]

    @pytest.mark.asyncio
    async def test_without_pagination_single_page(self) -> None:
        """The base query is one page; the next fetch exhausts."""
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            InMemoryDocumentStore(seeded_items(3)),
            "items",
            Item,
        )
        await session.fetch_next_page()
        assert ids(session) == ["a", "b", "c"]
        await session.fetch_next_page()
        assert session.exhausted
        assert ids(session) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_concurrent_fetch_is_a_no_op(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        """At most one page fetch is in flight."""
        first, second = await asyncio.gather(
            session.fetch_next_page(),
            session.fetch_next_page(),
        )
        assert [item.id for item in first] == ["a", "b"]
        assert second == []
        assert len(store.query_calls) == 1
        assert session.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_refresh_starts_over(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        while not session.exhausted:
            await session.fetch_next_page()
        await store.delete_document("items", "a")

        await session.refresh()
        assert ids(session) == ["b", "c"]
        assert session.cursor is not None
        assert session.cursor.id == "c"
        assert not session.exhausted

    @pytest.mark.asyncio
    async def test_refresh_during_fetch_lets_the_later_write_win(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        """Neither call is cancelled; the refresh merges last."""
        await session.fetch_next_page()
        racing = asyncio.create_task(session.fetch_next_page())
        await asyncio.sleep(0)
        assert session.state is SyncState.FETCHING

        await session.refresh()
        await racing

        racing_cursor = store.query_calls[1][2]
        assert racing_cursor is not None
        assert racing_cursor.id == "b"
        assert store.query_calls[2][2] is None
        assert len(store.query_calls) == 3
        assert ids(session) == ["c", "d", "a", "b"]
        assert len(set(ids(session))) == len(session)
        assert session.cursor is not None
        assert session.cursor.id == "b"
        assert session.state is SyncState.IDLE
        assert not session.exhausted

    def test_reset(self, session: PaginatedCollectionSync[Item]) -> None:
        session.reset()
        assert len(session) == 0
        assert session.cursor is None
        assert session.state is SyncState.IDLE

    def test_malformed_configuration(self, store: RecordingDocumentStore) -> None:
        with pytest.raises(InvalidArgumentError):
            PaginatedCollectionSync(
                store,
                "items",
                Item,
                predicates=[QueryPredicate.limit(10)],
                pagination=Pagination(order_by="seq", limit=2),
            )
        with pytest.raises(InvalidArgumentError):
            PaginatedCollectionSync(store, "items/a", Item)

    @pytest.mark.asyncio
    async def test_query_failure_is_raised_and_reported(self) -> None:
        sink = ErrorSink()
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            FailingQueryStore(),
            "items",
            Item,
            on_error=sink,
        )
        with pytest.raises(TransportError):
            await session.fetch_next_page()
        assert isinstance(session.last_error, TransportError)
        assert sink.errors == [session.last_error]
        assert session.state is SyncState.IDLE


class TestDecodingFailures:
    """Per-record decode failures."""

    @pytest.fixture
    def broken_store(self) -> InMemoryDocumentStore:
        return InMemoryDocumentStore(
            {
                "items": {
                    "a": {"seq": 0},
                    "b": {"seq": 1, "label": ["not", "a", "string"]},
                    "c": {"seq": 2},
                },
            },
        )

    @pytest.mark.asyncio
    async def test_ignore_reports_in_aggregate(
        self,
        broken_store: InMemoryDocumentStore,
    ) -> None:
        sink = ErrorSink()
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            broken_store,
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=10),
            on_error=sink,
        )
        await session.fetch_next_page()

        assert ids(session) == ["a", "c"]
        assert isinstance(session.last_error, PageDecodeError)
        assert [f.document_id for f in session.last_error.failures] == ["b"]
        assert sink.errors == [session.last_error]

    @pytest.mark.asyncio
    async def test_raise_leaves_view_and_cursor(
        self,
        broken_store: InMemoryDocumentStore,
    ) -> None:
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            broken_store,
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=10),
            decoding_failure_strategy=DecodingFailureStrategy.RAISE,
        )
        with pytest.raises(PageDecodeError):
            await session.fetch_next_page()
        assert len(session) == 0
        assert session.cursor is None
        assert not session.exhausted


class TestLocalWrites:
    """Create and update reconciliation."""

    @pytest.mark.asyncio
    async def test_create_appends_persisted_version(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        await session.fetch_next_page()
        created = await session.create(Item(seq=10, label="new"))

        assert created.id is not None
        assert ids(session) == ["a", "b", created.id]
        stored = await store.get_document("items", created.id)
        assert stored.data == {"seq": 10, "label": "new"}

    @pytest.mark.asyncio
    async def test_create_existing_id_is_deduplicated(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        await session.fetch_next_page()
        await session.create(Item(id="a", seq=0, label="again"))
        assert ids(session) == ["a", "b"]
        assert session.documents[0].label == "again"

    @pytest.mark.asyncio
    async def test_create_with_sort(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        await session.fetch_next_page()
        by_seq_desc = SortOrder(key=lambda item: item.seq, descending=True)
        await session.create(Item(id="z", seq=-1), sort=by_seq_desc)
        assert ids(session) == ["b", "a", "z"]

    @pytest.mark.asyncio
    async def test_pagination_sort_is_the_default(self) -> None:
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            InMemoryDocumentStore(seeded_items()),
            "items",
            Item,
            pagination=Pagination(
                order_by="seq",
                limit=2,
                sort=SortOrder(key=lambda item: item.seq),
            ),
        )
        await session.fetch_next_page()
        await session.create(Item(id="first", seq=-5))
        assert ids(session) == ["first", "a", "b"]

    @pytest.mark.asyncio
    async def test_create_if_non_existent_writes_once(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        first = await session.create(Item(id="n1", seq=7), if_non_existent=True)
        second = await session.create(
            Item(id="n1", seq=99, label="ignored"),
            if_non_existent=True,
        )
        assert first == second == Item(id="n1", seq=7)
        assert len(store.set_calls) == 1
        assert ids(session) == ["n1"]

    @pytest.mark.asyncio
    async def test_update_keeps_position(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        await session.fetch_next_page()
        await session.fetch_next_page()
        old = session.documents[1]

        updated = await session.update(old, Item(seq=1, label="edited"))

        assert updated.id == "b"
        assert ids(session) == ["a", "b", "c", "d"]
        assert session.documents[1].label == "edited"
        assert store.set_calls[-1] == ("items", "b", {"seq": 1, "label": "edited"}, True)

    @pytest.mark.asyncio
    async def test_update_local_copy_is_not_reread(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        """Fields omitted from a merge keep their remote value only remotely."""
        await store.set_document("items", "a", {"seq": 0, "label": "kept"})
        await session.fetch_next_page()
        assert session.documents[0].label == "kept"

        await session.update(session.documents[0], Item(seq=3))

        assert session.documents[0] == Item(id="a", seq=3)
        remote = await store.get_document("items", "a")
        assert remote.data == {"seq": 3, "label": "kept"}

    @pytest.mark.asyncio
    async def test_update_with_sort_moves_entry(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        await session.fetch_next_page()
        await session.update(
            session.documents[0],
            Item(seq=50),
            sort=SortOrder(key=lambda item: item.seq),
        )
        assert ids(session) == ["b", "a"]

    @pytest.mark.asyncio
    async def test_update_unknown_entry_appends(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        await session.fetch_next_page()
        await session.update(Item(id="e", seq=4), Item(seq=4, label="seen"))
        assert ids(session) == ["a", "b", "e"]

    @pytest.mark.asyncio
    async def test_update_requires_id(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            await session.update(Item(seq=1), Item(seq=2))
        assert isinstance(session.last_error, InvalidArgumentError)

    @pytest.mark.asyncio
    async def test_view_never_holds_duplicate_ids(
        self,
        session: PaginatedCollectionSync[Item],
    ) -> None:
        await session.create(Item(id="c", seq=2))
        await session.fetch_next_page()
        await session.create(Item(id="a", seq=0))
        await session.update(Item(id="d", seq=3), Item(seq=3))
        await session.fetch_next_page()
        await session.fetch_next_page()

        view = ids(session)
        assert len(view) == len(set(view))
        assert set(view) == {"a", "b", "c", "d", "e"}

    @pytest.mark.asyncio
    async def test_counters(
        self,
        session: PaginatedCollectionSync[Item],
        store: RecordingDocumentStore,
    ) -> None:
        await session.fetch_next_page()
        item = session.documents[0]
        await session.increase(item, "seq", 5)
        await session.decrease(item, "seq", 2)
        await session.decrease(item, "seq", 0)
        assert (await store.get_document("items", "a")).data["seq"] == 3


class TestOptimisticDelete:
    """Fire-and-forget deletes."""

    @pytest.mark.asyncio
    async def test_local_removal_is_immediate(self) -> None:
        store = GatedDeleteStore(seeded_items(3), fail_deletes=False)
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(store, "items", Item)
        await session.fetch_next_page()

        session.delete(session.documents[1])
        assert ids(session) == ["a", "c"]
        assert (await store.get_document("items", "b")).id == "b"

        store.release.set()
        await session.flush()
        assert [r.id for r in await store.run_query("items", [])] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_remote_failure_does_not_restore(self) -> None:
        sink = ErrorSink()
        store = GatedDeleteStore(seeded_items(3))
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            store,
            "items",
            Item,
            on_error=sink,
        )
        await session.fetch_next_page()

        session.delete(session.documents[0])
        await store.delete_started.wait()
        assert ids(session) == ["b", "c"]
        assert session.last_error is None

        store.release.set()
        await session.flush()

        assert ids(session) == ["b", "c"]
        assert isinstance(session.last_error, TransportError)
        assert session.last_error.document_id == "a"
        assert sink.errors == [session.last_error]

    def test_delete_requires_id(self, session: PaginatedCollectionSync[Item]) -> None:
        with pytest.raises(InvalidArgumentError):
            session.delete(Item(seq=1))


class TestListen:
    """Owned listen subscriptions."""

    @pytest.mark.asyncio
    async def test_snapshots_replace_the_view(self) -> None:
        store = InMemoryDocumentStore(seeded_items(3))
        session: PaginatedCollectionSync[Item] = PaginatedCollectionSync(
            store,
            "items",
            Item,
            pagination=Pagination(order_by="seq", limit=1),
        )
        task = session.listen()
        for _ in range(20):
            if len(session) == 3:
                break
            await asyncio.sleep(0)
        assert ids(session) == ["a", "b", "c"]
        assert session.cursor is None

        await store.delete_document("items", "b")
        for _ in range(20):
            if len(session) == 2:
                break
            await asyncio.sleep(0)
        assert ids(session) == ["a", "c"]

        await session.close()
        assert task.cancelled()
        assert store._subscriptions == []

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self) -> None:
        store = InMemoryDocumentStore(seeded_items(2))
        async with PaginatedCollectionSync(store, "items", Item) as session:
            session.listen([QueryPredicate.equals("seq", 1)])
            for _ in range(20):
                if len(session) == 1:
                    break
                await asyncio.sleep(0)
            assert ids(session) == ["b"]
        assert store._subscriptions == []
