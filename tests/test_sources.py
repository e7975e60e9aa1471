"""Tests for the individual dependent discovery sources."""

from dataclasses import replace

import pytest

from conftest import FakeResponse, query
from npm_blast_radius.sources import (
    LibrariesIoSource,
    NpmsSearchSource,
    NpmWebsiteSource,
    SourceUnavailableError,
)


def npms_page(names, total):
    return FakeResponse(json_data={
        "total": total,
        "results": [{"package": {"name": name}} for name in names],
    })


def test_npms_paginates_until_total(make_fetcher, config, sleeps):
    pages = {
        0: npms_page([f"dep-{i}" for i in range(250)], 300),
        250: npms_page([f"dep-{i}" for i in range(250, 300)], 300),
    }

    def handler(url):
        params = query(url)
        if params["q"] != "dependencies:pkg-a":
            return npms_page([], 0)
        return pages[int(params["from"])]

    source = NpmsSearchSource(make_fetcher(handler), replace(config, include_peer=False))
    names = source.discover("pkg-a")

    assert len(names) == 300
    assert names[0] == "dep-0"
    assert [query(c["url"])["from"] for c in source.fetcher.session.calls] == ["0", "250"]
    assert query(source.fetcher.session.calls[0]["url"])["size"] == "250"
    assert sleeps == [0.15]


def test_npms_queries_each_enabled_section(make_fetcher, config):
    def handler(url):
        qualifier = query(url)["q"].split(":")[0]
        return npms_page([f"{qualifier}-user", "pkg-a"], 2)

    source = NpmsSearchSource(make_fetcher(handler), replace(config, include_dev=True, include_peer=True))
    names = source.discover("pkg-a")

    assert names == ["dependencies-user", "devDependencies-user", "peerDependencies-user"]


def test_npms_stops_at_remaining_budget(make_fetcher, config):
    source = NpmsSearchSource(
        make_fetcher(lambda url: npms_page([f"dep-{i}" for i in range(250)], 1000)), config
    )

    names = source.discover("pkg-a", remaining=10)

    assert len(names) == 10
    assert len(source.fetcher.session.calls) == 1


def test_npms_fetch_error_ends_only_that_section(make_fetcher, config):
    def handler(url):
        if query(url)["q"].startswith("dependencies:"):
            return FakeResponse(status_code=500)
        return npms_page(["peer-user"], 1)

    source = NpmsSearchSource(make_fetcher(handler), config)

    assert source.discover("pkg-a") == ["peer-user"]


def test_npms_stops_on_empty_page_and_tolerates_missing_fields(make_fetcher, config):
    responses = [
        FakeResponse(json_data={"results": [{"package": {"name": "a"}}, {"package": None}, {}]}),
        FakeResponse(json_data={"results": []}),
    ]
    source = NpmsSearchSource(
        make_fetcher(lambda url: responses.pop(0)), replace(config, include_peer=False)
    )

    assert source.discover("pkg-a") == ["a"]


def test_libraries_io_disabled_without_api_key(make_fetcher, config):
    source = LibrariesIoSource(make_fetcher(lambda url: pytest.fail("no request expected")), config)

    assert not source.is_enabled()
    assert source.discover("pkg-a") == []


def test_libraries_io_pages_until_short_page(make_fetcher, config, sleeps):
    def handler(url):
        page = int(query(url)["page"])
        if page == 1:
            return FakeResponse(json_data=[{"name": f"lib-{i}"} for i in range(100)])
        return FakeResponse(json_data=[{"name": "lib-last"}, {"nom": "bad"}])

    cfg = replace(config, libraries_io_api_key="key")
    source = LibrariesIoSource(make_fetcher(handler), cfg)
    names = source.discover("@scope/pkg")

    assert source.is_enabled()
    assert len(names) == 101
    assert names[-1] == "lib-last"
    first_url = source.fetcher.session.calls[0]["url"]
    assert first_url.startswith("https://libraries.example.test/api/npm/%40scope%2Fpkg/dependents?")
    assert query(first_url) == {"api_key": "key", "per_page": "100", "page": "1"}
    assert len(source.fetcher.session.calls) == 2
    assert sleeps == [0.15]


def test_libraries_io_disabled_message_raises(make_fetcher, config):
    cfg = replace(config, libraries_io_api_key="key")
    source = LibrariesIoSource(
        make_fetcher(lambda url: FakeResponse(json_data={"message": "Disabled for performance reasons"})), cfg
    )

    with pytest.raises(SourceUnavailableError, match="Disabled for performance reasons"):
        source.discover("pkg-a")


def test_libraries_io_respects_remaining(make_fetcher, config):
    cfg = replace(config, libraries_io_api_key="key")
    source = LibrariesIoSource(
        make_fetcher(lambda url: FakeResponse(json_data=[{"name": f"lib-{i}"} for i in range(100)])), cfg
    )

    assert len(source.discover("pkg-a", remaining=5)) == 5


PAGE = """
<a href="/package/pkg-a">pkg-a</a>
<a href="/package/alpha">alpha</a>
<a href="/package/%40scope%2Fbeta">@scope/beta</a>
<a href="/package/alpha?activeTab=readme">alpha readme</a>
<a href="/policies/terms">terms</a>
<a href="/package/login-help">login</a>
"""


def test_website_extracts_package_links(make_fetcher, config):
    source = NpmWebsiteSource(make_fetcher(lambda url: FakeResponse(text="")), config)

    assert source.extract_names(PAGE, "pkg-a") == ["alpha", "@scope/beta"]


def test_website_stops_when_a_page_adds_nothing(make_fetcher, config, sleeps):
    pages = [PAGE, PAGE]

    source = NpmWebsiteSource(make_fetcher(lambda url: FakeResponse(text=pages.pop(0))), config)
    names = source.discover("pkg-a")

    assert names == ["alpha", "@scope/beta"]
    offsets = [query(c["url"])["offset"] for c in source.fetcher.session.calls]
    assert offsets == ["0", "36"]
    assert sleeps == [0.4]


def test_website_stops_on_empty_html(make_fetcher, config):
    source = NpmWebsiteSource(make_fetcher(lambda url: FakeResponse(status_code=404)), config)

    assert source.discover("pkg-a") == []
    assert len(source.fetcher.session.calls) == 4


def test_website_respects_remaining_and_config(make_fetcher, config):
    source = NpmWebsiteSource(make_fetcher(lambda url: FakeResponse(text=PAGE)), config)

    assert source.discover("pkg-a", remaining=1) == ["alpha"]
    assert not NpmWebsiteSource(source.fetcher, replace(config, use_scrape=False)).is_enabled()
