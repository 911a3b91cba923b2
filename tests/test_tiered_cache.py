import pytest
from core.cache.tiered_cache import (
    AVAILABILITY, AVAILABILITY_TTL, BOOKCOVER, COVER_HIT_TTL, COVER_MISS_TTL, GOOGLE_BOOKS,
    GOOGLE_BOOKS_COVERS, IDENTITY, QUERY, WIKIPEDIA, search_cache_key
)

def test_round_trip(cache):
    cache.set(WIKIPEDIA, 'search_blue_box', ['Blue Box (manga)'])
    assert cache.get(WIKIPEDIA, 'search_blue_box') == ['Blue Box (manga)']
    assert cache.get(WIKIPEDIA, 'search_missing') is None

def test_availability_tier_expires(cache, clock):
    cache.set_record('1001', {'id': '1001'})
    clock.advance(AVAILABILITY_TTL - 1)
    assert cache.get_record('1001') == {'id': '1001'}
    clock.advance(2)
    assert cache.get_record('1001') is None
    # Expired entries are removed on read
    assert cache.stats().total_entries == 0

def test_identity_tier_never_expires(cache, clock):
    cache.set_record_id('978-1-9747-0052-3', '1001')
    clock.advance(10 * 365 * 24 * 3600)
    assert cache.get_record_id('9781974700523') == '1001'

def test_query_tier_expires(cache, clock):
    key = search_cache_key('Demon Slayer', 'title', 60)
    assert key == 'title_demon_slayer_60'
    cache.set_search(key, {'records': []})
    clock.advance(AVAILABILITY_TTL + 1)
    assert cache.get_search(key) is None

def test_cover_tombstone(cache, clock):
    cache.set_cover(BOOKCOVER, '9781974700523', None)
    assert cache.get_cover(BOOKCOVER, '9781974700523') == ''
    clock.advance(COVER_MISS_TTL + 1)
    assert cache.get_cover(BOOKCOVER, '9781974700523') is None

def test_cover_hit_lives_longer(cache, clock):
    cache.set_cover(BOOKCOVER, '9781974700523', 'https://covers.example/1.jpg')
    clock.advance(COVER_MISS_TTL + 1)
    assert cache.get_cover(BOOKCOVER, '9781974700523') == 'https://covers.example/1.jpg'
    clock.advance(COVER_HIT_TTL)
    assert cache.get_cover(BOOKCOVER, '9781974700523') is None

def test_stats_by_type(cache):
    cache.set_record_id('9781974700523', '1001')
    cache.set_record('1001', {'id': '1001'})
    cache.set(WIKIPEDIA, 'series_blue_box', {'title': 'Blue Box'})
    stats = {s.type: s for s in cache.stats().caches}
    assert stats['nc-cardinal'].entry_count == 2
    assert stats['wikipedia'].entry_count == 1
    assert stats['bookcover'].entry_count == 0
    assert stats['nc-cardinal'].total_size_bytes > 0
    assert cache.stats().total_entries == 3

def test_clear_type(cache):
    cache.set(WIKIPEDIA, 'series_a', 1)
    cache.set(GOOGLE_BOOKS, 'search_a', 1)
    cache.set(GOOGLE_BOOKS_COVERS, '9781974700523', '')
    result = cache.clear_type('google-books')
    assert result.deleted_count == 2
    assert cache.get(WIKIPEDIA, 'series_a') == 1

def test_clear_type_rejects_unknown(cache):
    with pytest.raises(ValueError):
        cache.clear_type('goodreads')

def test_clear_all(cache):
    cache.set(WIKIPEDIA, 'series_a', 1)
    cache.set_record_id('9781974700523', '1001')
    assert cache.clear_all().deleted_count == 2
    assert cache.stats().total_entries == 0

def test_clear_isbn_cascades_and_spares_other_isbns(cache):
    for isbn, record_id in (('9781974700523', '1001'), ('9781974700530', '1002')):
        cache.set_record_id(isbn, record_id)
        cache.set_record(record_id, {'id': record_id})
        cache.set_cover(BOOKCOVER, isbn, f"https://covers.example/{isbn}.jpg")

    result = cache.clear_isbn('978-1-9747-0052-3')

    assert set(result.deleted_keys) == {
        f"{IDENTITY}/9781974700523", f"{AVAILABILITY}/1001", f"{BOOKCOVER}/9781974700523"
    }
    assert cache.get_record_id('9781974700523') is None
    assert cache.get_record('1001') is None
    assert cache.get_cover(BOOKCOVER, '9781974700523') is None
    assert cache.get_record_id('9781974700530') == '1002'
    assert cache.get_record('1002') == {'id': '1002'}
    assert cache.get_cover(BOOKCOVER, '9781974700530') is not None

def test_clear_series(cache):
    cache.set(WIKIPEDIA, 'series_blue_box', {})
    cache.set(WIKIPEDIA, 'page_title_list_of_blue_box_chapters', {})
    cache.set(WIKIPEDIA, 'search_blue_box', [])
    cache.set(WIKIPEDIA, 'series_frieren', {})
    result = cache.clear_series('Blue Box')
    assert result.deleted_count == 2
    assert cache.get(WIKIPEDIA, 'search_blue_box') == []
    assert cache.get(WIKIPEDIA, 'series_frieren') == {}

def test_clear_search_spans_tiers(cache):
    cache.set(WIKIPEDIA, 'search_demon_slayer', [])
    cache.set(GOOGLE_BOOKS, 'search_demon_slayer_manga_40', [])
    cache.set_search(search_cache_key('demon slayer', 'title', 60), {})
    cache.set_search(search_cache_key('frieren', 'title', 60), {})
    result = cache.clear_search('Demon Slayer')
    assert result.deleted_count == 3
    assert cache.get(QUERY, 'title_frieren_60') == {}

def test_undecodable_entry_is_a_miss(cache, database):
    from core.sa.repositories.cache import CacheRepository
    with database.get_db() as session:
        CacheRepository(session).upsert(WIKIPEDIA, 'broken', '{nope', None)
    assert cache.get(WIKIPEDIA, 'broken') is None
