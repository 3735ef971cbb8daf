"""
Smart redirect page: try to open the installed app, fall back to the store.

Flow in the browser:
  1. Load <scheme>://link?<params> in a hidden iframe, then via location.
  2. Android only: retry with an intent:// URI after 500 ms.
  3. If the page still has focus after the timeout, go to the store.

The pending link has already been captured server-side by the time this
page renders, so the store path still resolves after install.
"""

import html
import json

from deferlink.core.platforms import Platform, encode_params

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Opening App...</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
           display: flex; justify-content: center; align-items: center; min-height: 100vh;
           margin: 0; background: #4f46e5; color: white; text-align: center; }}
    .btn {{ display: inline-block; padding: 12px 24px; background: white; color: #4f46e5;
            text-decoration: none; border-radius: 8px; font-weight: 600; }}
  </style>
</head>
<body>
  <div>
    <h1>Opening App...</h1>
    <p>If the app doesn't open, tap below to download</p>
    <a href="{store_href}" class="btn">Download App</a>
  </div>
  <script>
    (function() {{
      var appUri = {app_uri};
      var storeUrl = {store_url};
      var androidIntent = {android_intent};
      var timeout = {timeout};
      var start = Date.now();
      var hasFocus = true;

      window.addEventListener('blur', function() {{ hasFocus = false; }});
      window.addEventListener('pagehide', function() {{ hasFocus = false; }});
      document.addEventListener('visibilitychange', function() {{
        if (document.hidden) hasFocus = false;
      }});

      var iframe = document.createElement('iframe');
      iframe.style.display = 'none';
      iframe.src = appUri;
      document.body.appendChild(iframe);

      setTimeout(function() {{ if (hasFocus) window.location.href = appUri; }}, 100);

      if (androidIntent) {{
        setTimeout(function() {{
          if (hasFocus && Date.now() - start < timeout) window.location.href = androidIntent;
        }}, 500);
      }}

      setTimeout(function() {{
        if (hasFocus && Date.now() - start >= timeout - 100) window.location.href = storeUrl;
      }}, timeout);
    }})();
  </script>
</body>
</html>"""


def _js(value: str) -> str:
    # JSON string literal, safe inside a <script> block
    return json.dumps(value).replace("</", "<\\/")


def app_uri(app_scheme: str, params: dict) -> str:
    query = encode_params(params)
    return f"{app_scheme}://link{'?' + query if query else ''}"


def android_intent_uri(app_scheme: str, params: dict, package_name: str) -> str:
    query = encode_params(params)
    return f"intent://link{'?' + query if query else ''}#Intent;scheme={app_scheme};package={package_name};end"


def render_smart_redirect(
    app_scheme: str,
    params: dict,
    store_url: str,
    platform: Platform,
    package_name: str = "",
    timeout_ms: int = 2500,
) -> str:
    intent = ""
    if platform == Platform.ANDROID:
        intent = android_intent_uri(app_scheme, params, package_name)

    return PAGE_TEMPLATE.format(
        store_href=html.escape(store_url, quote=True),
        app_uri=_js(app_uri(app_scheme, params)),
        store_url=_js(store_url),
        android_intent=_js(intent),
        timeout=int(timeout_ms),
    )
