import json
import logging
import pytest
from core.entities.store import EntityStore, detect_media_type, generate_id
from core.models.entities import (
    SCHEMA_VERSION, EditionFormat, EditionInput, Language, MediaType,
    SeriesRelationship, SeriesStatus
)

def test_generate_id_format():
    entity_id = generate_id('s')
    assert entity_id.startswith('s_')
    assert len(entity_id) == 12
    assert generate_id('s') != entity_id

@pytest.mark.parametrize("title,hints,expected", [
    ("Overlord (Light Novel)", {}, MediaType.LIGHT_NOVEL),
    ("Overlord", {'is_light_novel': True}, MediaType.LIGHT_NOVEL),
    ("Berserk Manga", {}, MediaType.MANGA),
    ("Frieren Art Book", {}, MediaType.ARTBOOK),
    ("Naruto Guidebook", {}, MediaType.GUIDEBOOK),
    ("Naruto", {}, MediaType.MANGA),
])
def test_detect_media_type(title, hints, expected):
    assert detect_media_type(title, **hints) == expected

def test_find_or_create_edition_is_idempotent(store):
    series = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    volume = store.find_or_create_volume(series.id, 1)
    data = EditionInput(isbn="978-1-9747-3453-5")
    first = store.find_or_create_edition(data, [volume.id])
    second = store.find_or_create_edition(data, [volume.id])
    assert first.id == second.id
    assert store.get_store_stats().edition_count == 1
    assert store.get_volume(volume.id).edition_ids == [first.id]

def test_isbns_are_unique(store):
    series = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    volumes = store.find_or_create_volumes(series.id, [(1, None), (2, None)])
    store.find_or_create_editions([
        (EditionInput(isbn="9781974734535"), [volumes[0].id]),
        (EditionInput(isbn="978-1-9747-3453-5"), [volumes[0].id]),
        (EditionInput(isbn="9781974736560"), [volumes[1].id]),
    ])
    store.find_or_create_edition(EditionInput(isbn="9781974736560"), [volumes[1].id])
    isbns = [store.get_edition(e).isbn for v in volumes for e in store.get_volume(v.id).edition_ids]
    assert len(isbns) == len(set(isbns)) == 2

def test_omnibus_edition_links_several_volumes(store):
    series = store.find_or_create_series_by_title("One Piece", MediaType.MANGA)
    volumes = store.find_or_create_volumes(series.id, [(1, None), (2, None), (3, None)])
    editions = store.find_or_create_editions([
        (EditionInput(isbn="9781421555140"), [v.id]) for v in volumes
    ])
    assert len(editions) == 1
    assert editions[0].volume_ids == [v.id for v in volumes]
    for volume in volumes:
        assert store.get_volume_editions(volume.id)[0].id == editions[0].id

def test_find_or_create_series_by_title_ignores_media_suffix(store):
    first = store.find_or_create_series_by_title("Frieren", MediaType.MANGA)
    second = store.find_or_create_series_by_title("Frieren (Manga)", MediaType.MANGA)
    assert first.id == second.id
    assert store.get_store_stats().series_count == 1

def test_manga_and_light_novel_stay_distinct(store):
    manga = store.find_or_create_series_by_title("Overlord (Manga)", MediaType.MANGA)
    novel = store.find_or_create_series_by_title("Overlord (Light Novel)", MediaType.LIGHT_NOVEL)
    assert manga.id != novel.id
    assert store.get_series_by_title("Overlord", MediaType.LIGHT_NOVEL).id == novel.id
    assert store.get_series_by_title("Overlord", MediaType.MANGA).id == manga.id

def test_find_or_create_by_wikipedia_attaches_page_id(store):
    by_title = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    by_page = store.find_or_create_series_by_wikipedia(70001, "Blue Box", MediaType.MANGA)
    assert by_page.id == by_title.id
    assert store.get_series_by_wikipedia_id(70001).id == by_title.id

def test_backfill_never_overwrites(store):
    series = store.find_or_create_series_by_wikipedia(1, "Blue Box", MediaType.MANGA)
    assert series.author is None
    store.find_or_create_series_by_wikipedia(1, "Blue Box", author="Kouji Miura",
                                             status=SeriesStatus.ONGOING)
    store.find_or_create_series_by_wikipedia(1, "Blue Box", author="Someone Else",
                                             status=SeriesStatus.COMPLETED)
    stored = store.get_series(series.id)
    assert stored.author == "Kouji Miura"
    assert stored.status == SeriesStatus.ONGOING

def test_repeated_identical_input_does_not_touch_updated_at(store):
    series = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA, author="Kouji Miura")
    before = store.get_series(series.id).updated_at
    store.find_or_create_series_by_title("Blue Box", MediaType.MANGA, author="Kouji Miura")
    assert store.get_series(series.id).updated_at == before

def test_volumes_are_ordered_and_unique(store):
    series = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    store.find_or_create_volume(series.id, 3)
    store.find_or_create_volume(series.id, 1)
    again = store.find_or_create_volume(series.id, 3, title="Third")
    store.find_or_create_volume(series.id, 2)
    numbers = [store.get_volume(v).volume_number for v in store.get_series(series.id).volume_ids]
    assert numbers == [1, 2, 3]
    assert store.get_volume(again.id).title == "Third"
    assert store.get_store_stats().volume_count == 3

def test_volume_for_unknown_series_raises(store):
    with pytest.raises(KeyError):
        store.find_or_create_volume("s_missing", 1)

def test_link_volume_to_edition_is_bidirectional(store):
    series = store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    volume = store.find_or_create_volume(series.id, 1)
    edition = store.find_or_create_edition(EditionInput(isbn="9784088827262", language=Language.JA))
    store.link_volume_to_edition(volume.id, edition.id)
    assert edition.id in store.get_volume(volume.id).edition_ids
    assert volume.id in store.get_edition(edition.id).volume_ids
    assert store.get_edition_by_isbn("978-4-08-882726-2").language == Language.JA

def test_link_related_series(store):
    parent = store.find_or_create_series_by_title("Lantern Road", MediaType.MANGA)
    related = store.find_or_create_series_by_title(
        "Lantern Road (Light Novel)", MediaType.LIGHT_NOVEL,
        parent_series_id=parent.id, relationship=SeriesRelationship.ADAPTATION
    )
    store.link_related_series(parent.id, related.id)
    store.link_related_series(parent.id, related.id)
    assert store.get_series(parent.id).related_series_ids == [related.id]
    assert store.get_series(related.id).parent_series_id == parent.id

def test_snapshot_survives_reopen(store_path):
    with EntityStore(store_path) as first:
        series = first.find_or_create_series_by_wikipedia(42, "Blue Box", MediaType.MANGA)
        volume = first.find_or_create_volume(series.id, 1)
        first.find_or_create_edition(EditionInput(isbn="9781974734535"), [volume.id])

    with EntityStore(store_path) as second:
        assert second.get_series_by_wikipedia_id(42).id == series.id
        assert second.get_edition_by_isbn("9781974734535").volume_ids == [volume.id]
        assert second.get_series_by_title("blue box").id == series.id

def test_snapshot_carries_schema_version(store, store_path):
    store.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    data = json.loads(store_path.read_text())
    assert data['schema_version'] == SCHEMA_VERSION

def test_schema_mismatch_resets_store(store_path, caplog):
    store_path.write_text(json.dumps({'schema_version': 1, 'series': {'s_old': {'title': 'Old'}}}))
    with caplog.at_level(logging.WARNING):
        with EntityStore(store_path) as reopened:
            assert reopened.get_store_stats().series_count == 0
    assert "reset to empty" in caplog.text
    assert json.loads(store_path.read_text())['schema_version'] == SCHEMA_VERSION

@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    json.dumps({'schema_version': SCHEMA_VERSION, 'series': {'s_1': {'id': 's_1'}}}),
])
def test_corrupt_snapshot_resets_store(store_path, caplog, content):
    store_path.write_text(content)
    with caplog.at_level(logging.WARNING):
        reopened = EntityStore(store_path).open()
    assert reopened.get_store_stats().series_count == 0
    assert "reset to empty" in caplog.text

def test_store_opens_lazily(store_path):
    lazy = EntityStore(store_path)
    series = lazy.find_or_create_series_by_title("Blue Box", MediaType.MANGA)
    assert lazy.get_series(series.id).title == "Blue Box"
    lazy.close()

def test_edition_defaults(store):
    edition = store.find_or_create_edition(EditionInput(isbn="9781974734535", release_date="2023-04-04"))
    assert edition.format == EditionFormat.PHYSICAL
    assert edition.language == Language.EN
    assert edition.release_date == "2023-04-04"
