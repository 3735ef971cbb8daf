"""Tests for the /.well-known verification documents."""

from deferlink.config import Settings
from deferlink.core.manifests import HANDLE_ALL_URLS, apple_app_site_association, asset_links


def test_aasa_app_id_and_paths():
    doc = apple_app_site_association(Settings(ios_team_id="T", ios_bundle_id="B"))
    assert doc["applinks"]["apps"] == []
    details = doc["applinks"]["details"]
    assert len(details) == 1
    assert details[0]["appID"] == "T.B"
    assert details[0]["paths"] == ["*"]


def test_asset_links_single_fingerprint():
    settings = Settings(android_package_name="com.example.app", android_sha256_fingerprints=["AA:BB"])
    links = asset_links(settings)
    assert links == [{
        "relation": [HANDLE_ALL_URLS],
        "target": {
            "namespace": "android_app",
            "package_name": "com.example.app",
            "sha256_cert_fingerprints": ["AA:BB"],
        },
    }]


def test_asset_links_one_entry_per_fingerprint():
    settings = Settings(android_package_name="com.example.app",
                        android_sha256_fingerprints=["FINGERPRINT1", "FINGERPRINT2"])
    links = asset_links(settings)
    assert len(links) == 2
    assert [entry["target"]["sha256_cert_fingerprints"] for entry in links] == [["FINGERPRINT1"], ["FINGERPRINT2"]]


def test_asset_links_empty_without_fingerprints():
    assert asset_links(Settings(android_sha256_fingerprints=[])) == []
