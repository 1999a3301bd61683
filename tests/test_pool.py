from tests.fakes import StubResolver
from tubebreak.pool import ItemPool
from tubebreak.services import FetchError, FetchFailedError, NoCredentialError
from tubebreak.state import ConfigStore, PlaylistSource


def _store_with(tmp_path, *playlist_ids):
    store = ConfigStore(tmp_path / "extension.json")

    def seed(config):
        for playlist_id in playlist_ids:
            config.add_playlist(playlist_id)

    store.update(seed)
    return store


def test_unresolved_source_is_resolved_once(tmp_path):
    store = _store_with(tmp_path, "PL1")
    resolver = StubResolver(results={"PL1": ["a", "b"]})
    pool = ItemPool(resolver, store)

    sources = store.load().playlists
    assert pool.get_pool(sources) == ["a", "b"]
    assert resolver.calls == ["PL1"]

    # Next tick reads the write-through cache and skips the resolver.
    assert pool.get_pool(store.load().playlists) == ["a", "b"]
    assert resolver.calls == ["PL1"]


def test_pool_concatenates_in_configuration_order_with_duplicates():
    sources = [
        PlaylistSource(id="PL1", items=["a", "b"], items_resolved=True),
        PlaylistSource(id="PL2", items=["b", "c"], items_resolved=True),
    ]
    resolver = StubResolver()

    assert ItemPool(resolver).get_pool(sources) == ["a", "b", "b", "c"]
    assert resolver.calls == []


def test_failing_source_is_skipped_without_aborting(tmp_path):
    store = _store_with(tmp_path, "PL1", "PL2", "PL3")
    resolver = StubResolver(
        results={"PL1": ["a"], "PL3": ["c"]},
        errors={"PL2": FetchFailedError("PL2", FetchError("HTTP 500", status=500))},
    )

    assert ItemPool(resolver, store).get_pool(store.load().playlists) == ["a", "c"]

    persisted = store.load()
    assert persisted.get("PL2").items_resolved is False
    assert persisted.get("PL1").items == ["a"]
    assert persisted.get("PL3").items == ["c"]


def test_failed_source_is_retried_next_time(tmp_path):
    store = _store_with(tmp_path, "PL1")
    failing = StubResolver(errors={"PL1": NoCredentialError("no key")})
    assert ItemPool(failing, store).get_pool(store.load().playlists) == []

    working = StubResolver(results={"PL1": ["z"]})
    assert ItemPool(working, store).get_pool(store.load().playlists) == ["z"]
    assert working.calls == ["PL1"]


def test_resolved_empty_playlist_is_not_refetched(tmp_path):
    store = _store_with(tmp_path, "PL1")
    resolver = StubResolver(results={"PL1": []})
    pool = ItemPool(resolver, store)

    assert pool.get_pool(store.load().playlists) == []
    assert pool.get_pool(store.load().playlists) == []
    assert resolver.calls == ["PL1"]


def test_pool_is_empty_without_sources():
    assert ItemPool(StubResolver()).get_pool([]) == []


def test_write_through_skips_playlist_removed_meanwhile(tmp_path):
    store = _store_with(tmp_path, "PL1", "PL2")
    sources = store.load().playlists
    store.update(lambda config: config.remove_playlist("PL2"))

    resolver = StubResolver(results={"PL1": ["a"], "PL2": ["b"]})
    ItemPool(resolver, store).get_pool(sources)

    persisted = store.load()
    assert [source.id for source in persisted.playlists] == ["PL1"]
    assert persisted.get("PL1").items == ["a"]
