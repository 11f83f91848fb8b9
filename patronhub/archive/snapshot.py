"""
Local HTML snapshot of a post.

The snapshot is a standalone page that renders the stored post body (with
anything executable removed), or a raw capture of the upstream page, or a
placeholder when neither is available.
"""

import html
from datetime import datetime

from bs4 import BeautifulSoup

MAX_CAPTURE_CHARS = 5_000_000
PLACEHOLDER_BODY = "<p><em>No post body was captured for this item.</em></p>"

_STRIP_TAGS = ("script", "style", "iframe", "object", "embed")
_URL_ATTRIBUTES = ("href", "src", "action", "formaction", "xlink:href")

_TEMPLATE = """<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{title}</title>
    <style>
      body {{ font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; background: #09090b; color: #f4f4f5; margin: 0; padding: 24px; }}
      .wrap {{ max-width: 980px; margin: 0 auto; }}
      .meta {{ color: #a1a1aa; font-size: 13px; margin: 6px 0 18px; }}
      .card {{ background: #0b1220; border: 1px solid #27272a; border-radius: 14px; padding: 18px; }}
      a {{ color: #86efac; }}
      img, video {{ max-width: 100%; height: auto; }}
      pre {{ margin: 0; }}
    </style>
  </head>
  <body>
    <div class="wrap">
      <h1 style="font-size:18px; margin:0 0 6px;">{title}</h1>
      <div class="meta">
        <div>Archived snapshot (local copy)</div>
        <div>Published: {published}</div>
        {source}
      </div>
      <div class="card">
        {body}
      </div>
    </div>
  </body>
</html>
"""


def sanitize_post_html(raw_html: str) -> str:
    """Remove scripts, embeds, inline event handlers and javascript: URLs."""
    soup = BeautifulSoup(raw_html, "html.parser")

    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr.lower().startswith("on"):
                del tag[attr]
            elif attr.lower() in _URL_ATTRIBUTES:
                value = tag.get(attr)
                if isinstance(value, str) and value.strip().lower().startswith("javascript:"):
                    del tag[attr]

    return str(soup)


def capture_body(raw_page: str) -> str:
    """Escaped, size-capped capture of an upstream page for display."""
    escaped = html.escape(raw_page[:MAX_CAPTURE_CHARS])
    return f'<pre style="white-space:pre-wrap; word-break:break-word;">{escaped}</pre>'


def render_snapshot(title: str, published_at: datetime, source_url: str | None, body_html: str) -> str:
    source = ""
    if source_url:
        url = html.escape(source_url)
        source = f'<div>Source: <a href="{url}" target="_blank" rel="noreferrer">{url}</a></div>'

    return _TEMPLATE.format(
        title=html.escape(title),
        published=html.escape(published_at.isoformat()),
        source=source,
        body=body_html,
    )
