# core/catalog/opensearch.py
import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup
from pydantic import ValidationError

from core.availability import AvailabilitySummary, categorize_status, not_in_catalog, summarize
from core.cache.tiered_cache import TieredCache, search_cache_key
from core.catalog.libraries import ORG_CODES
from core.catalog.models import CatalogRecord, Holding, MarcVolumeInfo, SearchClass, SearchPage
from core.config import DEFAULT_CATALOG_BASE_URL
from core.errors import SourceUnavailable
from core.search import volume_numbers
from core.utils.batching import iter_batches
from core.utils.http import HttpClient
from core.utils.text import strip_isbn

SOURCE = 'nc-cardinal'


class OpenSearchClient:
    """
    Client for the catalog's OpenSearch feeds (Evergreen ILS).

    Searches return Atom feeds with full holdings
    (``/opac/extras/opensearch/1.1/{org}/atom-full/{class}/``); direct record
    fetches and MARC records go through SuperCat. ISBN lookups use two cache
    tiers: a permanent ISBN to record id map and a short-lived record cache
    holding the volatile availability data.
    """

    def __init__(self, cache: TieredCache, base_url: str = DEFAULT_CATALOG_BASE_URL,
                 org: str = ORG_CODES['CARDINAL'], http: Optional[HttpClient] = None,
                 concurrency: int = 10):
        """
        Initialize the client.

        Args:
            cache: Tiered cache used for the identity, availability and query tiers
            base_url: Catalog host
            org: Organization code searched by default
            http: HTTP client (tests inject one around a mocked session)
            concurrency: Parallel lookups per batch in search_by_isbns
        """
        self.cache = cache
        self.base_url = base_url.rstrip('/')
        self.org = org
        self.http = http or HttpClient(SOURCE)
        self.concurrency = concurrency
        self.logger = logging.getLogger(self.__class__.__name__)

    # -- searching ------------------------------------------------------

    def search(self, text: str, search_class: SearchClass = SearchClass.KEYWORD, count: int = 20,
               start_index: int = 1, org: Optional[str] = None, skip_cache: bool = False) -> SearchPage:
        """
        Run an OpenSearch query.

        First-page results are cached for an hour under a key built from the
        search class, the sanitized text and the page size.

        Raises:
            SourceUnavailable: The catalog could not be reached
        """
        search_class = SearchClass(search_class)
        key = search_cache_key(text, search_class.value, count)
        if not skip_cache and start_index == 1:
            cached = self.cache.get_search(key)
            if cached is not None:
                try:
                    page = SearchPage.model_validate(cached)
                    self.logger.debug(f"Search cache hit for '{text}' ({search_class.value})")
                    return page
                except ValidationError:
                    self.logger.warning(f"Ignoring malformed cached search {key}")

        url = f"{self.base_url}/opac/extras/opensearch/1.1/{org or self.org}/atom-full/{search_class.value}/"
        xml = self.http.get_text(url, params={
            'searchTerms': text,
            'count': count,
            'startIndex': start_index,
        })
        page = parse_atom_feed(xml)

        if start_index == 1:
            self.cache.set_search(key, page.model_dump(mode='json'))
        return page

    def search_by_keyword(self, text: str, count: int = 20) -> SearchPage:
        return self.search(text, SearchClass.KEYWORD, count=count)

    def search_by_title(self, title: str, count: int = 20) -> SearchPage:
        return self.search(title, SearchClass.TITLE, count=count)

    def search_by_author(self, author: str, count: int = 20) -> SearchPage:
        return self.search(author, SearchClass.AUTHOR, count=count)

    def search_by_subject(self, subject: str, count: int = 20) -> SearchPage:
        return self.search(subject, SearchClass.SUBJECT, count=count)

    def search_by_series(self, series: str, count: int = 20) -> SearchPage:
        return self.search(series, SearchClass.SERIES, count=count)

    def fetch_by_id(self, record_id: str) -> Optional[CatalogRecord]:
        """Fetch one record with holdings through SuperCat; None when it cannot be fetched."""
        url = f"{self.base_url}/opac/extras/supercat/retrieve/atom-full/record/{record_id}"
        try:
            xml = self.http.get_text(url)
        except SourceUnavailable as e:
            self.logger.warning(f"Direct fetch of record {record_id} failed: {e}")
            return None
        records = parse_atom_feed(xml).records
        return records[0] if records else None

    # -- ISBN lookups ---------------------------------------------------

    def _cached_record(self, isbn: str) -> Optional[CatalogRecord]:
        record_id = self.cache.get_record_id(isbn)
        if not record_id:
            return None
        data = self.cache.get_record(record_id)
        if data is None:
            return None
        try:
            return CatalogRecord.model_validate(data)
        except ValidationError:
            return None

    def cached_isbns(self, isbns: List[str]) -> List[str]:
        """ISBNs whose catalog record is already cached."""
        return [isbn for isbn in isbns if self._cached_record(isbn) is not None]

    def prime(self, record: CatalogRecord, isbns: Optional[List[str]] = None) -> None:
        """
        Store a record obtained from a search in the identity and availability tiers.

        Args:
            record: Record to cache
            isbns: ISBNs to map to the record (defaults to all of the record's ISBNs)
        """
        for isbn in isbns if isbns is not None else record.isbns:
            self.cache.set_record_id(isbn, record.id)
        self.cache.set_record(record.id, record.model_dump(mode='json'))

    def search_by_isbn(self, isbn: str) -> Optional[CatalogRecord]:
        """
        Find the record for an ISBN.

        Order of lookups: identity tier plus availability tier; identity tier
        plus a direct fetch by id when the record expired; a keyword search
        limited to five results. The record whose ISBNs include this one is
        preferred over the first result.

        Raises:
            SourceUnavailable: The keyword search failed
        """
        clean = strip_isbn(isbn)
        record_id = self.cache.get_record_id(clean)
        if record_id:
            cached = self._cached_record(clean)
            if cached is not None:
                self.logger.debug(f"Full cache hit for ISBN {clean} -> record {record_id}")
                return cached

            self.logger.debug(f"Using cached record id {record_id} for ISBN {clean}")
            record = self.fetch_by_id(record_id)
            if record is not None:
                self.cache.set_record(record.id, record.model_dump(mode='json'))
                return record

        self.logger.debug(f"Full search for ISBN {clean}")
        page = self.search(clean, SearchClass.KEYWORD, count=5)
        match = next(
            (r for r in page.records if any(strip_isbn(i) == clean for i in r.isbns)),
            None
        )
        result = match or (page.records[0] if page.records else None)
        if result is not None:
            self.prime(result, [clean])
        return result

    def search_by_isbns(self, isbns: List[str]) -> Dict[str, Optional[CatalogRecord]]:
        """
        Look up many ISBNs, serving cached ones first.

        Uncached ISBNs are fetched in parallel batches; a lookup that fails
        yields None for its ISBN instead of failing the batch.
        """
        results: Dict[str, Optional[CatalogRecord]] = {}
        unique = list(dict.fromkeys(strip_isbn(i) for i in isbns))

        uncached = []
        for isbn in unique:
            record = self._cached_record(isbn)
            if record is not None:
                results[isbn] = record
            else:
                uncached.append(isbn)

        if not uncached:
            self.logger.debug(f"All {len(unique)} ISBNs served from cache")
            return results

        self.logger.info(f"{len(results)} cached, {len(uncached)} need fetching (concurrency={self.concurrency})")
        for _, batch in iter_batches(uncached, self.search_by_isbn, self.concurrency):
            results.update(batch)
        return results

    def availability_by_isbns(self, isbns: List[str], home_library: Optional[str] = None
                              ) -> Dict[str, AvailabilitySummary]:
        """Availability summary per ISBN; ISBNs with no record get a not-in-catalog summary."""
        availability = {}
        for isbn, record in self.search_by_isbns(isbns).items():
            availability[isbn] = summarize(record, home_library) if record else not_in_catalog()
        return availability

    # -- MARC -----------------------------------------------------------

    def fetch_volume_info(self, record_id: str) -> MarcVolumeInfo:
        """
        Read volume hints from a record's MARC XML.

        Uses 245 $a (title), $n (volume number) and $p (part name), and
        490 $a (series statement).

        Raises:
            SourceUnavailable: The MARC record could not be fetched
        """
        url = f"{self.base_url}/opac/extras/supercat/retrieve/marcxml/record/{record_id}"
        return parse_marc_volume_info(self.http.get_text(url))

    def enrich_with_volume_info(self, record: CatalogRecord) -> CatalogRecord:
        """Merge MARC volume hints into a record; on failure the record is returned unchanged."""
        try:
            info = self.fetch_volume_info(record.id)
        except SourceUnavailable as e:
            self.logger.warning(f"Failed to enrich record {record.id}: {e}")
            return record
        return record.model_copy(update={
            'volume_number': info.volume_number,
            'volume_title': info.volume_title,
            'series_name': info.series_name,
            'title': info.full_title or record.title,
        })

    def search_series_volumes(self, series_title: str, max_volumes: int = 50) -> List[CatalogRecord]:
        """
        Find the individual volumes of a series, enriched from MARC and sorted by volume number.

        Box sets, omnibus and complete editions are skipped; at most twenty
        records are enriched.
        """
        page = self.search(f"{series_title} manga", SearchClass.TITLE, count=max_volumes)
        candidates = [
            r for r in page.records
            if not any(word in r.title.lower() for word in ('box set', 'omnibus', 'complete'))
        ]
        enriched = [self.enrich_with_volume_info(r) for r in candidates[:20]]
        enriched.sort(key=lambda r: volume_numbers.parse_number(r.volume_number) or 999)
        return enriched


# -- parsing ------------------------------------------------------------

def _int(text: Optional[str], default: int) -> int:
    try:
        return int(text) if text else default
    except ValueError:
        return default


def _text(tag) -> str:
    return tag.get_text().strip() if tag is not None else ''


def parse_holdings(entry) -> List[Holding]:
    """Parse volume/copies/copy elements of one Atom entry."""
    holdings = []
    for volume in entry.find_all('volume'):
        call_number = volume.get('label', '')
        owning_lib = volume.find('owning_lib')
        owning_name = owning_lib.get('name', '') if owning_lib is not None else ''
        owning_code = owning_lib.get('shortname', '') if owning_lib is not None else ''

        for copy in volume.find_all('copy'):
            status_tag = copy.find('status')
            status = _text(status_tag)
            circ_lib = copy.find('circ_lib')
            holdings.append(Holding(
                library_code=circ_lib.get('shortname', owning_code) if circ_lib is not None else owning_code,
                library_name=_text(copy.find('circlib')) or owning_name,
                location=_text(copy.find('location')),
                call_number=call_number,
                status=status,
                status_category=categorize_status(status),
                barcode=copy.get('barcode'),
                available=(status_tag is not None and status_tag.get('ident') == '0')
                          or status.lower() == 'available'
            ))
    return holdings


def _record_volume_number(entry, holdings: List[Holding]) -> Optional[str]:
    for suffix in entry.find_all('suffix'):
        number = (volume_numbers.extract(volume_numbers.CATALOG_SUFFIX, _text(suffix))
                  or volume_numbers.extract(volume_numbers.CATALOG_SORT_KEY, suffix.get('label_sortkey', '')))
        if number:
            return str(number)
    for holding in holdings:
        number = volume_numbers.extract(volume_numbers.CALL_NUMBER, holding.call_number)
        if number:
            return str(number)
    return None


def parse_atom_feed(xml: str) -> SearchPage:
    """
    Parse an atom-full OpenSearch or SuperCat response.

    Entries without a ``urn:tcn:`` id are skipped.
    """
    soup = BeautifulSoup(xml, 'xml')
    records = []
    for entry in soup.find_all('entry'):
        record_id = None
        for id_tag in entry.find_all('id'):
            match = re.search(r'urn:tcn:(\d+)', id_tag.get_text())
            if match:
                record_id = match.group(1)
                break
        if not record_id:
            continue

        authors = []
        for author in entry.find_all('author'):
            name = _text(author.find('name'))
            name = name.split('(CARDINAL)')[0].strip()
            if name:
                authors.append(name)

        isbns = []
        for identifier in entry.find_all('identifier'):
            match = re.search(r'URN:ISBN:(.+)', identifier.get_text())
            if match:
                isbns.append(match.group(1).strip())

        subjects = [c['term'] for c in entry.find_all('category') if c.get('term')]
        holdings = parse_holdings(entry)

        records.append(CatalogRecord(
            id=record_id,
            title=_text(entry.find('title')),
            authors=authors,
            isbns=isbns,
            subjects=subjects,
            holdings=holdings,
            summary=_text(entry.find('summary')) or None,
            updated_date=_text(entry.find('updated')) or None,
            volume_number=_record_volume_number(entry, holdings)
        ))

    next_link = soup.find('link', attrs={'rel': 'next'})
    return SearchPage(
        total_results=_int(_text(soup.find('totalResults')), 0),
        start_index=_int(_text(soup.find('startIndex')), 1),
        items_per_page=_int(_text(soup.find('itemsPerPage')), 0),
        records=records,
        next_page_url=next_link.get('href') if next_link is not None else None
    )


def parse_marc_volume_info(xml: str) -> MarcVolumeInfo:
    """Extract 245 $a/$n/$p and 490 $a from MARC21 XML."""
    soup = BeautifulSoup(xml, 'xml')

    def subfield(tag: str, code: str) -> str:
        field = soup.find('datafield', attrs={'tag': tag})
        if field is None:
            return ''
        sub = field.find('subfield', attrs={'code': code})
        return _text(sub)

    title = subfield('245', 'a')
    number = subfield('245', 'n')
    part = subfield('245', 'p')
    series = subfield('490', 'a')

    full_title = title
    if number:
        full_title += f" Vol. {number}"
    if part:
        full_title += f": {part}"

    return MarcVolumeInfo(
        volume_number=number or None,
        volume_title=part or None,
        series_name=series or None,
        full_title=full_title or None
    )
