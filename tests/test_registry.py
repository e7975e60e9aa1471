"""Tests for registry access and metadata validation."""

from conftest import FakeResponse
from npm_blast_radius.models import PackageMetadata
from npm_blast_radius.registry import RegistryClient, encode_package_name


def test_encode_package_name():
    assert encode_package_name("left-pad") == "left-pad"
    assert encode_package_name("@scope/pkg") == "@scope%2Fpkg"


def test_get_package_builds_metadata_from_registry(make_fetcher):
    doc = {
        "name": "@scope/pkg",
        "dist-tags": {"latest": "1.0.0"},
        "versions": {"1.0.0": {"dependencies": {"a": "^1.0.0"}}},
        "time": {"created": "2020-01-01T00:00:00Z", "1.0.0": "2020-01-02T00:00:00Z"},
    }
    fetcher = make_fetcher(lambda url: FakeResponse(json_data=doc))

    meta = RegistryClient(fetcher).get_package("@scope/pkg")

    assert fetcher.session.calls[0]["url"] == "https://registry.example.test/@scope%2Fpkg"
    assert meta.name == "@scope/pkg"
    assert meta.latest_tag == "1.0.0"
    assert meta.versions["1.0.0"].dependencies == {"a": "^1.0.0"}
    assert meta.published_at("1.0.0") == "2020-01-02T00:00:00Z"
    assert meta.last_update == "2020-01-01T00:00:00Z"


def test_metadata_defaults_absent_and_malformed_fields():
    meta = PackageMetadata.from_registry({
        "name": "pkg",
        "dist-tags": None,
        "versions": {"1.0.0": "not a manifest", "2.0.0": {"dependencies": ["x"]}},
        "time": {"2.0.0": None},
    })

    assert meta.latest_tag is None
    assert list(meta.versions) == ["2.0.0"]
    assert meta.versions["2.0.0"].dependencies == {}
    assert meta.versions["2.0.0"].peer_dependencies == {}
    assert meta.time_map == {}
    assert meta.last_update is None
    assert meta.published_at("2.0.0") is None
    assert meta.published_at("") is None


def test_metadata_from_non_mapping_document():
    meta = PackageMetadata.from_registry(None, name="ghost")

    assert meta.name == "ghost"
    assert meta.versions == {}
