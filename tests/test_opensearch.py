import pytest
from unittest.mock import Mock
from core.catalog.models import SearchClass, StatusCategory
from core.catalog.opensearch import OpenSearchClient, parse_atom_feed, parse_marc_volume_info
from core.errors import SourceUnavailable
from core.utils.http import HttpClient

@pytest.fixture
def session():
    return Mock()

@pytest.fixture
def client(cache, session):
    return OpenSearchClient(cache, base_url='https://catalog.example', org='CARDINAL',
                            http=HttpClient('nc-cardinal', session=session), concurrency=2)

@pytest.fixture
def feed(load_fixture):
    return load_fixture('opensearch_demon_slayer.xml')

class TestParseAtomFeed:
    def test_skips_entries_without_record_id(self, feed):
        page = parse_atom_feed(feed)
        assert [r.id for r in page.records] == ['1001', '1002']
        assert page.total_results == 2
        assert page.items_per_page == 20
        assert page.next_page_url.endswith('startIndex=21')

    def test_record_fields(self, feed):
        record = parse_atom_feed(feed).records[0]
        assert record.title.startswith('Demon slayer')
        assert record.authors == ['Gotōge, Koyoharu']
        assert record.isbns == ['9781974700523', '1974700526']
        assert 'Graphic novels' in record.subjects
        assert record.summary == 'Tanjiro sets out to become a demon slayer.'
        assert record.primary_isbn() == '9781974700523'

    def test_holdings(self, feed):
        holdings = parse_atom_feed(feed).records[0].holdings
        assert len(holdings) == 2
        first, second = holdings
        assert first.library_code == 'HIGH_POINT_MAIN'
        assert first.library_name == 'High Point Library'
        assert first.call_number == 'GN/YA/Demon Slayer #1'
        assert first.status_category == StatusCategory.AVAILABLE
        assert first.available is True
        assert second.status_category == StatusCategory.CHECKED_OUT
        assert second.available is False

    def test_volume_numbers_from_call_number_and_suffix(self, feed):
        records = parse_atom_feed(feed).records
        assert records[0].volume_number == '1'
        assert records[1].volume_number == '2'

    def test_empty_feed(self):
        page = parse_atom_feed('<feed xmlns="http://www.w3.org/2005/Atom"></feed>')
        assert page.records == []
        assert page.total_results == 0

def test_parse_marc_volume_info(load_fixture):
    info = parse_marc_volume_info(load_fixture('marc_demon_slayer_12.xml'))
    assert info.volume_number == '12'
    assert info.volume_title == 'The Upper Ranks Gather'
    assert info.series_name == 'Demon slayer: kimetsu no yaiba'
    assert info.full_title == 'Demon slayer Vol. 12: The Upper Ranks Gather'

class TestSearch:
    def test_search_builds_url_and_caches_first_page(self, client, session, feed, make_response):
        session.request.return_value = make_response(text=feed)

        page = client.search('demon slayer', SearchClass.TITLE, count=20)
        again = client.search('demon slayer', SearchClass.TITLE, count=20)

        assert session.request.call_count == 1
        method, url = session.request.call_args.args
        assert method == 'GET'
        assert url == 'https://catalog.example/opac/extras/opensearch/1.1/CARDINAL/atom-full/title/'
        assert session.request.call_args.kwargs['params']['searchTerms'] == 'demon slayer'
        assert [r.id for r in again.records] == [r.id for r in page.records]

    def test_skip_cache(self, client, session, feed, make_response):
        session.request.return_value = make_response(text=feed)
        client.search('demon slayer', SearchClass.TITLE)
        client.search('demon slayer', SearchClass.TITLE, skip_cache=True)
        assert session.request.call_count == 2

    def test_search_failure_raises(self, client, session, make_response):
        session.request.return_value = make_response(status_code=503)
        with pytest.raises(SourceUnavailable) as exc_info:
            client.search('demon slayer')
        assert exc_info.value.status_code == 503

class TestSearchByIsbn:
    def test_keyword_search_primes_both_tiers(self, client, cache, session, feed, make_response):
        session.request.return_value = make_response(text=feed)

        record = client.search_by_isbn('978-1-9747-0053-0')

        assert record.id == '1002'
        assert cache.get_record_id('9781974700530') == '1002'
        assert cache.get_record('1002')['id'] == '1002'

    def test_full_cache_hit_makes_no_request(self, client, session, feed, make_response):
        session.request.return_value = make_response(text=feed)
        client.search_by_isbn('9781974700523')
        session.request.reset_mock()

        record = client.search_by_isbn('9781974700523')

        assert record.id == '1001'
        session.request.assert_not_called()

    def test_expired_record_is_fetched_by_id(self, client, cache, clock, session, feed, make_response):
        cache.set_record_id('9781974700523', '1001')
        session.request.return_value = make_response(text=feed)

        record = client.search_by_isbn('9781974700523')

        url = session.request.call_args.args[1]
        assert url == 'https://catalog.example/opac/extras/supercat/retrieve/atom-full/record/1001'
        assert record.id == '1001'
        assert cache.get_record('1001') is not None

    def test_no_match_returns_none(self, client, session, make_response):
        session.request.return_value = make_response(text='<feed xmlns="http://www.w3.org/2005/Atom"></feed>')
        assert client.search_by_isbn('9780000000000') is None

class TestSearchByIsbns:
    def test_cached_and_fetched(self, client, session, feed, make_response):
        client.prime(parse_atom_feed(feed).records[0])
        session.request.return_value = make_response(text=feed)

        results = client.search_by_isbns(['9781974700523', '9781974700530'])

        assert results['9781974700523'].id == '1001'
        assert results['9781974700530'].id == '1002'
        assert session.request.call_count == 1

    def test_cached_isbns(self, client, feed):
        client.prime(parse_atom_feed(feed).records[0])
        assert client.cached_isbns(['9781974700523', '9780000000000']) == ['9781974700523']

    def test_failed_lookup_yields_none(self, client, session, make_response):
        session.request.return_value = make_response(status_code=500)
        assert client.search_by_isbns(['9781974700523']) == {'9781974700523': None}

    def test_availability_marks_missing_isbns(self, client, session, feed, make_response):
        client.prime(parse_atom_feed(feed).records[0])
        session.request.return_value = make_response(text='<feed xmlns="http://www.w3.org/2005/Atom"></feed>')

        availability = client.availability_by_isbns(['9781974700523', '9780000000000'], home_library='PACK')

        assert availability['9781974700523'].available is True
        assert availability['9781974700523'].local_copies == 0
        assert availability['9780000000000'].not_in_catalog is True

def test_search_series_volumes_skips_box_sets_and_sorts(client, session, make_response):
    feed = (
        '<feed xmlns="http://www.w3.org/2005/Atom">'
        '<entry><id>urn:tcn:3</id><title>Frieren. Vol. 3</title></entry>'
        '<entry><id>urn:tcn:9</id><title>Frieren box set</title></entry>'
        '<entry><id>urn:tcn:1</id><title>Frieren. Vol. 1</title></entry>'
        '</feed>'
    )
    marc = {
        '3': '<record><datafield tag="245"><subfield code="a">Frieren</subfield><subfield code="n">3</subfield></datafield></record>',
        '1': '<record><datafield tag="245"><subfield code="a">Frieren</subfield><subfield code="n">1</subfield></datafield></record>',
    }

    def respond(method, url, params=None, timeout=None):
        if '/marcxml/record/' in url:
            return make_response(text=marc[url.rsplit('/', 1)[1]])
        return make_response(text=feed)

    session.request.side_effect = respond
    volumes = client.search_series_volumes('Frieren')
    assert [r.id for r in volumes] == ['1', '3']
    assert volumes[0].title == 'Frieren Vol. 1'
