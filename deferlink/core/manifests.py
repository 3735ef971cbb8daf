"""
App verification manifests served under /.well-known/.

  apple-app-site-association → iOS Universal Links
  assetlinks.json            → Android App Links

Both are pure functions of settings.
"""

from deferlink.config import Settings

HANDLE_ALL_URLS = "delegate_permission/common.handle_all_urls"


def apple_app_site_association(settings: Settings) -> dict:
    return {
        "applinks": {
            "apps": [],
            "details": [
                {
                    "appID": f"{settings.ios_team_id}.{settings.ios_bundle_id}",
                    "paths": ["*"],
                },
            ],
        },
    }


def asset_links(settings: Settings) -> list[dict]:
    """One statement per signing certificate fingerprint."""
    return [
        {
            "relation": [HANDLE_ALL_URLS],
            "target": {
                "namespace": "android_app",
                "package_name": settings.android_package_name,
                "sha256_cert_fingerprints": [fingerprint],
            },
        }
        for fingerprint in settings.android_sha256_fingerprints
    ]
