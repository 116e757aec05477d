"""Tests for feed ingestion runs."""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from conftest import ASSET_BASE_URL, FEED_URL, FakeHttp, FakeResponse
from radiofeed.exceptions import FetchError, IngestionInProgressError, SchemaError
from radiofeed.models import Ad, Album, Artist, Track
from radiofeed.services.entity_store import EntityKind, EntityStore
from radiofeed.services.fetch_queue import FetchQueue
from radiofeed.services.ingestion_service import IngestionService, exclusive_run, ingestion_running

SAMPLE_FEED = [
    {
        "track_artist": "A",
        "title": "T",
        "fn": "f1",
        "album": {"_id": "a1", "title": "Alb"},
        "artist": {"_id": "r1", "artistdisplay": "A"},
    },
    {"track_artist": "runspot", "title": "sweeper", "ad_type": "paid", "ad_source": "adswizz"},
]


@pytest.fixture
def queue() -> MagicMock:
    queue = MagicMock(spec=FetchQueue)
    queue.cached_path.return_value = None
    return queue


@pytest.fixture
def make_service(db, queue, feed_http):
    def make(payload=None, status_code: int = 200) -> IngestionService:
        http = feed_http(payload, status_code) if payload is not None else feed_http()
        return IngestionService(db, fetch_queue=queue, http=http, timeout=1)

    return make


def _count(db, model) -> int:
    return db.query(model).count()


class TestEndToEnd:
    def test_first_run_creates_everything(self, db, make_service) -> None:
        stats = make_service(SAMPLE_FEED).ingest(FEED_URL)

        assert stats.items_total == 2
        assert stats.tracks_new == 1
        assert stats.tracks_existing == 0
        assert stats.ads_processed == 1
        assert _count(db, Album) == 1
        assert _count(db, Artist) == 1
        assert _count(db, Track) == 1

        track = db.query(Track).one()
        assert track.album.title == "Alb"
        assert track.artist.artistdisplay == "A"
        ad = db.query(Ad).one()
        assert ad.ad_type == "paid"
        assert ad.ad_source == "adswizz"

    def test_second_run_dedups_tracks_but_not_ads(self, db, make_service) -> None:
        make_service(SAMPLE_FEED).ingest(FEED_URL)

        stats = make_service(SAMPLE_FEED).ingest(FEED_URL)

        assert stats.tracks_new == 0
        assert stats.tracks_existing == 1
        assert stats.albums_existing == 1
        assert stats.artists_existing == 1
        assert _count(db, Album) == 1
        assert _count(db, Artist) == 1
        assert _count(db, Track) == 1
        assert _count(db, Ad) == 2

    def test_repeat_runs_are_idempotent_for_tracks(self, db, make_service) -> None:
        feed = [
            {"_id": "t1", "track_artist": "A", "title": "One", "fn": "f1"},
            {"_id": "t2", "track_artist": "B", "title": "Two", "fn": "f2"},
            {"track_artist": "C", "title": "Three", "fn": "f3"},
        ]

        first = make_service(feed).ingest(FEED_URL)
        assert (first.tracks_new, first.tracks_existing) == (3, 0)

        for _ in range(2):
            again = make_service(feed).ingest(FEED_URL)
            assert (again.tracks_new, again.tracks_existing) == (0, 3)

        assert _count(db, Track) == 3

    def test_ingest_records_without_fetch(self, db, make_service) -> None:
        stats = make_service().ingest_records(SAMPLE_FEED)

        assert stats.tracks_new == 1
        assert _count(db, Track) == 1

    def test_ingest_records_rejects_non_list(self, make_service) -> None:
        with pytest.raises(SchemaError):
            make_service().ingest_records({"tracks": []})


class TestIdentityPrecedence:
    def test_external_id_wins_over_changed_content(self, db, make_service) -> None:
        make_service([{"_id": "X", "track_artist": "A", "title": "T", "fn": "f1"}]).ingest(FEED_URL)

        stats = make_service([{"_id": "X", "track_artist": "A2", "title": "T2", "fn": "f2"}]).ingest(FEED_URL)

        assert stats.tracks_existing == 1
        track = db.query(Track).one()
        # Existing rows are never updated
        assert track.title == "T"

    def test_content_match_without_id(self, db, make_service) -> None:
        make_service([{"_id": "X", "track_artist": "A", "title": "T", "fn": "f1"}]).ingest(FEED_URL)

        stats = make_service([{"track_artist": "A", "title": "T", "fn": "f1"}]).ingest(FEED_URL)

        assert stats.tracks_existing == 1
        assert _count(db, Track) == 1

    def test_distinct_filenames_are_distinct_tracks(self, db, make_service) -> None:
        feed = [
            {"track_artist": "A", "title": "T", "fn": "f1"},
            {"track_artist": "A", "title": "T", "fn": "f2"},
        ]
        stats = make_service(feed).ingest(FEED_URL)

        assert stats.tracks_new == 2
        assert _count(db, Track) == 2

    def test_duplicate_within_one_run(self, db, make_service) -> None:
        feed = [{"_id": "X", "track_artist": "A", "title": "T"}] * 2

        stats = make_service(feed).ingest(FEED_URL)

        assert stats.tracks_new == 1
        assert stats.tracks_existing == 1

    def test_oid_wrapped_ids_resolve_to_the_same_album(self, db, make_service) -> None:
        feed = [
            {"track_artist": "A", "title": "One", "album": {"_id": {"$oid": "a1"}, "title": "Alb"}},
            {"track_artist": "A", "title": "Two", "album": {"_id": "a1", "title": "Alb"}},
        ]
        make_service(feed).ingest(FEED_URL)

        assert _count(db, Album) == 1
        album_ids = {track.album_id for track in db.query(Track).all()}
        assert len(album_ids) == 1


class TestPartialRecords:
    def test_album_without_title_leaves_track_unlinked(self, db, make_service) -> None:
        stats = make_service([{"track_artist": "A", "title": "T", "album": {"_id": "a1"}}]).ingest(FEED_URL)

        assert stats.tracks_new == 1
        assert _count(db, Album) == 0
        assert db.query(Track).one().album_id is None

    def test_album_without_id_is_ignored(self, db, make_service) -> None:
        make_service([{"track_artist": "A", "title": "T", "album": {"title": "Alb"}}]).ingest(FEED_URL)

        assert _count(db, Album) == 0

    def test_malformed_records_are_skipped(self, db, make_service) -> None:
        feed = [
            "garbage",
            {"track_artist": "A"},
            {"track_artist": "runspot", "title": "sweeper", "ad_type": "bogus"},
            {"track_artist": "B", "title": "Good"},
        ]
        stats = make_service(feed).ingest(FEED_URL)

        assert stats.records_skipped == 3
        assert stats.tracks_new == 1
        assert _count(db, Ad) == 0

    def test_artist_without_display_name_is_not_created(self, db, make_service) -> None:
        make_service([{"track_artist": "A", "title": "T", "artist": {"_id": "r1"}}]).ingest(FEED_URL)

        assert _count(db, Artist) == 0
        assert db.query(Track).one().artist_id is None

    def test_composer_is_linked(self, db, make_service) -> None:
        feed = [{"track_artist": "A", "title": "T", "composer": {"_id": "c1", "display": "Bach"}}]
        stats = make_service(feed).ingest(FEED_URL)

        assert stats.composers_new == 1
        assert db.query(Track).one().composer.display == "Bach"


class TestCoverQueueing:
    def test_new_album_cover_is_queued(self, db, make_service, queue: MagicMock) -> None:
        feed = [{"track_artist": "A", "title": "T", "album": {"_id": "a1", "title": "Alb", "cdcover": "/covers/a/alb.jpg"}}]

        make_service(feed).ingest(FEED_URL)

        album = EntityStore(db).find_by_external_id(EntityKind.ALBUM, "a1")
        queue.enqueue.assert_called_once_with("/covers/a/alb.jpg", album.id)

    def test_album_without_cover_queues_nothing(self, make_service, queue: MagicMock) -> None:
        make_service(SAMPLE_FEED).ingest(FEED_URL)
        queue.enqueue.assert_not_called()

    def test_existing_album_missing_image_is_queued_again(self, db, make_service, queue: MagicMock) -> None:
        feed = [{"track_artist": "A", "title": "T", "album": {"_id": "a1", "title": "Alb", "cdcover": "/covers/a/alb.jpg"}}]
        make_service(feed).ingest(FEED_URL)
        queue.reset_mock()

        make_service(feed).ingest(FEED_URL)

        assert queue.enqueue.call_count == 1

    def test_cached_album_is_not_queued_again(self, db, make_service, queue: MagicMock) -> None:
        db.add(Album(original_id="a1", title="Alb", cdcover="/covers/a/alb.jpg", local_image="/imgs/a_alb.jpg"))
        db.commit()
        feed = [{"track_artist": "A", "title": "T", "album": {"_id": "a1", "title": "Alb", "cdcover": "/covers/a/alb.jpg"}}]

        make_service(feed).ingest(FEED_URL)

        queue.enqueue.assert_not_called()


class TestSharedCovers:
    """Albums with different ids but the same cover reference."""

    COVER = "/covers/g-m/album.jpg"
    COVER_URL = ASSET_BASE_URL + "covers/g-m/album.jpg"

    def _feed(self, *album_ids):
        return [
            {"track_artist": "A", "title": f"Song {album_id}", "album": {"_id": album_id, "title": "Alb", "cdcover": self.COVER}}
            for album_id in album_ids
        ]

    def _images(self, db):
        db.expire_all()
        return {album.original_id: album.local_image for album in db.query(Album).all()}

    def test_albums_waiting_on_one_download_are_all_linked(
        self, db, asset_cache, session_factory, png_bytes: bytes
    ) -> None:
        gate = threading.Event()
        assets = FakeHttp({self.COVER_URL: FakeResponse(200, content=png_bytes)}, gate=gate)
        queue = FetchQueue(asset_cache, session_factory=session_factory, http=assets, timeout=1, delay=0)
        feed = FakeHttp({FEED_URL: FakeResponse(200, json_data=self._feed("a1", "a2"))})
        try:
            IngestionService(db, fetch_queue=queue, http=feed).ingest(FEED_URL)
            gate.set()
            assert queue.wait_until_idle(5)
        finally:
            gate.set()
            queue.shutdown(timeout=5)

        path = str(asset_cache.local_path(self.COVER))
        assert self._images(db) == {"a1": path, "a2": path}
        assert assets.calls == [self.COVER_URL]

    def test_cover_cached_by_another_album_is_linked_without_download(
        self, db, fetch_queue: FetchQueue, asset_http: FakeHttp, asset_cache, png_bytes: bytes
    ) -> None:
        asset_http.responses[self.COVER_URL] = FakeResponse(200, content=png_bytes)
        feed = FakeHttp({FEED_URL: FakeResponse(200, json_data=self._feed("a1"))})
        IngestionService(db, fetch_queue=fetch_queue, http=feed).ingest(FEED_URL)
        assert fetch_queue.wait_until_idle(5)

        feed = FakeHttp({FEED_URL: FakeResponse(200, json_data=self._feed("a1", "a2"))})
        IngestionService(db, fetch_queue=fetch_queue, http=feed).ingest(FEED_URL)

        path = str(asset_cache.local_path(self.COVER))
        assert self._images(db) == {"a1": path, "a2": path}
        assert asset_http.calls == [self.COVER_URL]

    def test_album_left_without_image_is_repaired_on_next_run(
        self, db, fetch_queue: FetchQueue, asset_cache, png_bytes: bytes
    ) -> None:
        asset_cache.write(self.COVER, png_bytes)
        db.add(Album(original_id="a2", title="Alb", cdcover=self.COVER))
        db.commit()

        feed = FakeHttp({FEED_URL: FakeResponse(200, json_data=self._feed("a2"))})
        stats = IngestionService(db, fetch_queue=fetch_queue, http=feed).ingest(FEED_URL)

        assert stats.albums_existing == 1
        assert self._images(db) == {"a2": str(asset_cache.local_path(self.COVER))}


class TestFeedErrors:
    def test_connection_error_is_fetch_error(self, db) -> None:
        http = FakeHttp({FEED_URL: requests.ConnectionError("refused")})

        with pytest.raises(FetchError):
            IngestionService(db, http=http).ingest(FEED_URL)

    def test_server_error_is_fetch_error(self, make_service) -> None:
        with pytest.raises(FetchError) as excinfo:
            make_service([], status_code=500).ingest(FEED_URL)
        assert excinfo.value.status_code == 500

    def test_non_array_body_is_schema_error(self, db, make_service) -> None:
        with pytest.raises(SchemaError):
            make_service({"tracks": []}).ingest(FEED_URL)
        assert _count(db, Track) == 0

    def test_invalid_json_is_schema_error(self, db) -> None:
        http = FakeHttp({FEED_URL: FakeResponse(200, content=b"<html>")})

        with pytest.raises(SchemaError):
            IngestionService(db, http=http).ingest(FEED_URL)

    def test_guard_is_released_after_failure(self, make_service) -> None:
        with pytest.raises(FetchError):
            make_service([], status_code=503).ingest(FEED_URL)
        assert ingestion_running() is False


class TestRunGuard:
    def test_concurrent_run_is_rejected(self, db, make_service) -> None:
        with exclusive_run():
            assert ingestion_running() is True
            with pytest.raises(IngestionInProgressError):
                make_service(SAMPLE_FEED).ingest(FEED_URL)

        assert _count(db, Track) == 0
        assert ingestion_running() is False
