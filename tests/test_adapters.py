import json
from datetime import date
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from harvester.config import HarvestConfig
from harvester.core.models import SourcePage
from harvester.exceptions import AdapterFetchError, ConfigurationError
from harvester.providers.adapters import (
    ArxivAdapter,
    CrossrefAdapter,
    OpenAlexAdapter,
    PubMedAdapter,
    build_source_adapters,
    clean_markup,
)
from harvester.providers.clients import ArxivClient, CrossrefClient, OpenAlexClient, PubMedClient

CROSSREF_URL = "https://api.crossref.org/works"
ESEARCH_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/esearch.fcgi"
EFETCH_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/efetch.fcgi"
ARXIV_URL = "http://export.arxiv.org/api/query"
OPENALEX_URL = "https://api.openalex.org/works"


def _query(call) -> dict:
    return parse_qs(urlparse(call.request.url).query)


def _crossref_adapter() -> CrossrefAdapter:
    return CrossrefAdapter(CrossrefClient(session=requests.Session()), query="mfc", page_size=2)


def test_clean_markup_strips_tags_and_entities():
    assert clean_markup("<jats:p>A &amp; B</jats:p>\n <jats:p>C</jats:p>") == "A & B C"
    assert clean_markup("<p> </p>") is None
    assert clean_markup(None) is None


@responses.activate
def test_crossref_page_is_fetched_and_normalized(fixtures_dir):
    payload = json.loads((fixtures_dir / "http" / "crossref_works.json").read_text())
    responses.add(responses.GET, CROSSREF_URL, json=payload, status=200)
    adapter = _crossref_adapter()

    page = adapter.fetch_page("mfc", 0, 2)

    params = _query(responses.calls[0])
    assert params["rows"] == ["2"]
    assert params["offset"] == ["0"]
    assert params["filter"] == ["has-abstract:true"]
    assert page.has_more is True
    assert len(page.records) == 2

    paper = adapter.normalize(page.records[0])
    assert paper is not None
    assert paper.title == "High power density microbial fuel cell with stacked anodes"
    assert paper.source == "crossref_comprehensive"
    assert paper.doi == "10.1016/j.jpowsour.2020.228000"
    assert paper.authors == ("Bruce Logan", "Rabaey")
    assert paper.abstract == (
        "We report a peak power density of 420 mW/m2 and 85% coulombic efficiency "
        "with carbon cloth & graphite brush anodes."
    )
    assert paper.journal == "Journal of Power Sources"
    assert paper.publication_date == date(2020, 6, 1)
    assert paper.keywords == frozenset({"Energy Engineering", "Electrochemistry"})
    assert paper.has_performance_data is False

    assert adapter.normalize(page.records[1]) is None


@responses.activate
def test_crossref_last_page_reports_no_more(fixtures_dir):
    payload = json.loads((fixtures_dir / "http" / "crossref_works.json").read_text())
    payload["message"]["items"] = payload["message"]["items"][:1]
    responses.add(responses.GET, CROSSREF_URL, json=payload, status=200)

    page = _crossref_adapter().fetch_page("mfc", 2, 2)

    assert page.has_more is False


@responses.activate
def test_pubmed_searches_then_fetches_records(fixtures_dir):
    responses.add(
        responses.GET,
        ESEARCH_URL,
        json=json.loads((fixtures_dir / "http" / "pubmed_esearch.json").read_text()),
        status=200,
    )
    responses.add(
        responses.GET,
        EFETCH_URL,
        body=(fixtures_dir / "http" / "pubmed_efetch.xml").read_text(),
        status=200,
        content_type="application/xml",
    )
    adapter = PubMedAdapter(PubMedClient(session=requests.Session()), query="mfc", page_size=2)

    page = adapter.fetch_page("mfc", 0, 2)

    assert _query(responses.calls[0])["retmax"] == ["2"]
    assert _query(responses.calls[1])["id"] == ["31000001,31000002"]
    assert page.has_more is True

    first = adapter.normalize(page.records[0])
    assert first is not None
    assert first.title == "Current density of Geobacter biofilms in microbial fuel cells."
    assert first.pubmed_id == "31000001"
    assert first.doi == "10.1016/j.biortech.2019.121000"
    assert first.authors == ("Derek R Lovley", "MFC Consortium")
    assert first.abstract == "Anodes were compared. A current density of 2.1 A/m2 was reached."
    assert first.publication_date == date(2019, 8, 5)
    assert first.external_url == "https://pubmed.ncbi.nlm.nih.gov/31000001/"
    assert first.keywords == frozenset({"Geobacter", "Current density"})

    second = adapter.normalize(page.records[1])
    assert second is not None
    assert second.publication_date == date(2018, 1, 1)
    assert second.abstract is None


@responses.activate
def test_pubmed_empty_search_skips_efetch():
    responses.add(
        responses.GET,
        ESEARCH_URL,
        json={"esearchresult": {"count": "0", "idlist": []}},
        status=200,
    )
    adapter = PubMedAdapter(PubMedClient(session=requests.Session()), query="mfc", page_size=100)

    page = adapter.fetch_page("mfc", 0, 100)

    assert page == SourcePage(records=[], has_more=False)
    assert len(responses.calls) == 1


@responses.activate
def test_arxiv_full_page_implies_more(fixtures_dir):
    feed = (fixtures_dir / "http" / "arxiv_feed.xml").read_text()
    responses.add(responses.GET, ARXIV_URL, body=feed, status=200)
    adapter = ArxivAdapter(ArxivClient(session=requests.Session()), query="mfc", page_size=2)

    full = adapter.fetch_page("mfc", 0, 2)
    short = adapter.fetch_page("mfc", 2, 3)

    assert full.has_more is True
    assert short.has_more is False
    assert _query(responses.calls[1])["start"] == ["2"]

    paper = adapter.normalize(full.records[0])
    assert paper is not None
    assert paper.title == "Modelling the open circuit voltage of microbial fuel cells"
    assert paper.arxiv_id == "2101.01234"
    assert paper.doi == "10.48550/arxiv.2101.01234"
    assert paper.authors == ("Jane Doe", "John Roe")
    assert paper.journal == "J. Electrochem. 12 (2021)"
    assert paper.publication_date == date(2021, 1, 5)
    assert paper.external_url == "https://arxiv.org/abs/2101.01234"
    assert paper.keywords == frozenset({"physics.chem-ph", "q-bio.QM"})


@responses.activate
def test_openalex_maps_offsets_to_pages(fixtures_dir):
    payload = json.loads((fixtures_dir / "http" / "openalex_works.json").read_text())
    responses.add(responses.GET, OPENALEX_URL, json=payload, status=200)
    adapter = OpenAlexAdapter(
        OpenAlexClient(session=requests.Session()),
        query="mfc",
        page_size=100,
        mailto="lab@example.org",
    )

    page = adapter.fetch_page("mfc", 100, 100)

    params = _query(responses.calls[0])
    assert params["page"] == ["2"]
    assert params["per-page"] == ["100"]
    assert params["mailto"] == ["lab@example.org"]
    assert page.has_more is True

    paper = adapter.normalize(page.records[0])
    assert paper is not None
    assert paper.title == "Cathode catalysts for microbial fuel cells"
    assert paper.doi == "10.5555/mfc.2021.1"
    assert paper.pubmed_id == "33000001"
    assert paper.abstract == "Maximum power reached 1.2 W/m2."
    assert paper.authors == ("Alice Smith",)
    assert paper.journal == "Bioresource Technology"
    assert paper.publication_date == date(2021, 3, 15)


@responses.activate
def test_upstream_failure_degrades_to_empty_page(no_retry_sleep):
    responses.add(responses.GET, CROSSREF_URL, status=503)
    adapter = _crossref_adapter()

    page = adapter.fetch_page("mfc", 0, 2)

    assert page.records == []
    assert page.has_more is False


@responses.activate
def test_fetch_page_or_raise_surfaces_adapter_fetch_error():
    responses.add(responses.GET, CROSSREF_URL, body="<html>maintenance</html>", status=200)

    with pytest.raises(AdapterFetchError) as excinfo:
        _crossref_adapter().fetch_page_or_raise("mfc", 0, 2)

    assert excinfo.value.source == "crossref"


@responses.activate
def test_malformed_pubmed_xml_degrades_to_empty_page():
    responses.add(
        responses.GET,
        ESEARCH_URL,
        json={"esearchresult": {"count": "5", "idlist": ["1"]}},
        status=200,
    )
    responses.add(responses.GET, EFETCH_URL, body="<PubmedArticleSet>", status=200)
    adapter = PubMedAdapter(PubMedClient(session=requests.Session()), query="mfc", page_size=1)

    assert adapter.fetch_page("mfc", 0, 1) == SourcePage(records=[], has_more=False)


def test_invalid_page_arguments_are_rejected():
    adapter = _crossref_adapter()

    with pytest.raises(ValueError):
        adapter.fetch_page("mfc", -1, 2)
    with pytest.raises(ValueError):
        adapter.fetch_page(" ", 0, 2)


def test_build_source_adapters_follows_configured_order():
    config = HarvestConfig(sources=["openalex", "crossref"], page_sizes={"openalex": 25})

    adapters = build_source_adapters(config)

    assert [type(adapter) for adapter in adapters] == [OpenAlexAdapter, CrossrefAdapter]
    assert adapters[0].page_size == 25
    assert adapters[1].page_size == 200
    assert adapters[0].query == config.queries["openalex"]


def test_build_source_adapters_rejects_unknown_source():
    with pytest.raises(ConfigurationError):
        build_source_adapters(HarvestConfig(sources=["scopus"]))


@responses.activate
@pytest.mark.parametrize(
    "payload",
    [["unexpected"], {"message": ["unexpected"]}, "maintenance"],
    ids=["list-body", "list-message", "string-body"],
)
def test_crossref_payload_of_unexpected_shape_degrades_to_empty_page(payload):
    responses.add(responses.GET, CROSSREF_URL, json=payload, status=200)
    adapter = _crossref_adapter()

    assert adapter.fetch_page("mfc", 0, 2) == SourcePage(records=[], has_more=False)

    with pytest.raises(AdapterFetchError):
        adapter.fetch_page_or_raise("mfc", 0, 2)


@responses.activate
def test_openalex_meta_of_unexpected_shape_degrades_to_empty_page():
    responses.add(
        responses.GET, OPENALEX_URL, json={"results": [], "meta": [1, 2]}, status=200
    )
    adapter = OpenAlexAdapter(OpenAlexClient(session=requests.Session()), query="mfc", page_size=5)

    assert adapter.fetch_page("mfc", 0, 5) == SourcePage(records=[], has_more=False)


@responses.activate
def test_pubmed_search_result_of_unexpected_shape_degrades_to_empty_page():
    responses.add(responses.GET, ESEARCH_URL, json={"esearchresult": "busy"}, status=200)
    adapter = PubMedAdapter(PubMedClient(session=requests.Session()), query="mfc", page_size=1)

    assert adapter.fetch_page("mfc", 0, 1) == SourcePage(records=[], has_more=False)
    assert len(responses.calls) == 1
