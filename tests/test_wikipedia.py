import pytest
from unittest.mock import Mock
from core.errors import RateLimited
from core.models.entities import MediaType, SeriesRelationship
from core.sources import wikitext
from core.sources.wikipedia import (
    WikiPage, WikipediaSource, candidate_pages, normalize_for_compare, pick_best_result, score_search_result
)
from core.utils.http import HttpClient

@pytest.fixture
def session():
    return Mock()

@pytest.fixture
def source(cache, session):
    return WikipediaSource(cache, http=HttpClient('wikipedia', session=session))

def fake_api(make_response, search_results, pages):
    """Answer MediaWiki opensearch and query calls from in-memory data"""
    def respond(method, url, params=None, timeout=None):
        if params['action'] == 'opensearch':
            return make_response(json_data=[params['search'], search_results, [], []])
        title = params['titles']
        if title in pages:
            page_id, text = pages[title]
            body = {str(page_id): {'title': title, 'revisions': [{'slots': {'main': {'*': text}}}]}}
        else:
            body = {'-1': {'title': title, 'missing': ''}}
        return make_response(json_data={'query': {'pages': body}})
    return respond

def test_normalize_for_compare():
    assert normalize_for_compare('Spy × Family: Code ‘White’') == "spy x family code 'white'"

def test_adaptation_pages_are_not_scored():
    assert score_search_result('Blue Box (film)', 'Blue Box') is None
    assert score_search_result('Blue Box (TV series)', 'Blue Box') is None

def test_pick_best_prefers_manga_and_list_pages_over_bare_titles():
    assert pick_best_result(['Blue Box', 'Blue Box (manga)'], 'Blue Box') == 'Blue Box (manga)'
    assert pick_best_result(['Blue Box', 'List of Blue Box chapters'], 'Blue Box') == 'List of Blue Box chapters'

def test_pick_best_falls_back_to_non_adaptation():
    assert pick_best_result(['Blue Box (film)', 'Blue Box episode list'], 'Blue Box') == 'Blue Box episode list'
    assert pick_best_result([], 'Blue Box') is None

def test_candidate_pages():
    candidates = candidate_pages('blue box', 'Blue Box (manga)', ['List of Blue Box chapters', 'Blue Box'])
    assert candidates == [
        'List of Blue Box manga volumes', 'List of Blue Box chapters', 'Blue Box', 'Blue Box (manga)'
    ]

def test_candidate_pages_try_base_title_before_colon():
    candidates = candidate_pages('frieren', 'Frieren: Beyond Journey\'s End', [])
    assert 'List of Frieren chapters' in candidates
    assert candidates.index("List of Frieren: Beyond Journey's End chapters") < candidates.index('List of Frieren chapters')

def test_lookup_series(source, session, load_fixture, make_response):
    session.request.side_effect = fake_api(
        make_response,
        ['Blue Box (manga)', 'List of Blue Box chapters', 'Blue Box (film)'],
        {'List of Blue Box chapters': (123, load_fixture('wikitext_blue_box.txt'))}
    )

    listing = source.lookup_series('Blue Box')

    assert listing.title == 'Blue Box'
    assert listing.page_id == 123
    assert listing.source == 'wikipedia'
    assert listing.author == 'Kouji Miura'
    assert listing.media_type == MediaType.MANGA
    assert listing.is_complete is False
    assert [v.number for v in listing.volumes] == [1, 2, 3]
    assert listing.isbns == ['9781974734535', '9781974736560']

def test_lookup_series_is_cached(source, session, load_fixture, make_response):
    session.request.side_effect = fake_api(
        make_response,
        ['List of Blue Box chapters'],
        {'List of Blue Box chapters': (123, load_fixture('wikitext_blue_box.txt'))}
    )
    source.lookup_series('Blue Box')
    session.request.reset_mock()

    listing = source.lookup_series('Blue Box')

    assert listing.page_id == 123
    session.request.assert_not_called()

def test_lookup_series_follows_transclusions(source, session, load_fixture, make_response):
    session.request.side_effect = fake_api(
        make_response,
        ['List of Blue Box chapters'],
        {
            'List of Blue Box chapters': (123, '{{:List of Blue Box chapters (volumes 1–3)}}'),
            'List of Blue Box chapters (volumes 1–3)': (124, load_fixture('wikitext_blue_box.txt')),
        }
    )
    listing = source.lookup_series('Blue Box')
    assert listing.page_id == 123
    assert len(listing.volumes) == 3

def test_lookup_series_without_results(source, session, make_response):
    session.request.side_effect = fake_api(make_response, [], {})
    assert source.lookup_series('Nonexistent Series') is None

def test_lookup_series_without_volume_list(source, session, make_response):
    session.request.side_effect = fake_api(
        make_response, ['Blue Box (manga)'], {'Blue Box (manga)': (9, 'No volumes here.')}
    )
    assert source.lookup_series('Blue Box') is None

def test_rate_limit_propagates(source, session, make_response):
    session.request.return_value = make_response(status_code=429)
    with pytest.raises(RateLimited):
        source.lookup_series('Blue Box')

def test_mixed_page_splits_light_novels_into_related(source, load_fixture):
    page = WikiPage(page_id=5, title='List of Lantern Road chapters', wikitext=load_fixture('wikitext_mixed_parts.txt'))
    listing = source._build_listing(page, wikitext.parse_volume_list(page.wikitext))

    assert listing.title == 'Lantern Road'
    assert listing.media_type == MediaType.MANGA
    assert [v.number for v in listing.volumes] == [1, 2, 3]
    assert listing.is_complete is True
    related = listing.related[0]
    assert related.title == 'Lantern Road (Light Novel)'
    assert related.relationship == SeriesRelationship.ADAPTATION
    assert related.media_type == MediaType.LIGHT_NOVEL
    assert [v.number for v in related.volumes] == [1, 2]

def test_light_novel_only_page_is_titled_as_such(source):
    text = "===Light novels===\n{{Graphic novel list\n| VolumeNumber = 1\n| LicensedISBN = 978-1-64273-001-1\n}}"
    page = WikiPage(page_id=6, title='List of Lantern Road light novels', wikitext=text)
    listing = source._build_listing(page, wikitext.parse_volume_list(text))
    assert listing.title == 'Lantern Road (Light Novel)'
    assert listing.media_type == MediaType.LIGHT_NOVEL
    assert listing.related == []
