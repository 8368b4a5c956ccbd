"""DOM outline snapshot for chrome-cli.

Produces a compact, indented outline of ``document.body``, one element per
line::

    body
      div#main.container "Welcome back"
        a.nav-link "Home"

Each line carries the tag name, ``#id``, ``.class`` chain and up to 50
characters of the element's trimmed text content.
"""

from __future__ import annotations

from typing import Any

DEFAULT_MAX_DEPTH = 10
TEXT_LIMIT = 50

_SNAPSHOT_JS = """
([maxDepth, textLimit]) => {
  function walk(el, depth) {
    if (depth > maxDepth) return '';
    const tag = el.tagName.toLowerCase();
    const id = el.id ? '#' + el.id : '';
    const cls = el.className && typeof el.className === 'string'
      ? '.' + el.className.split(' ').filter(Boolean).join('.')
      : '';
    const text = el.textContent ? el.textContent.trim().slice(0, textLimit) : '';
    let out = '  '.repeat(depth) + tag + id + (cls === '.' ? '' : cls)
      + (text ? ' "' + text + '"' : '') + '\\n';
    for (const child of el.children) {
      out += walk(child, depth + 1);
    }
    return out;
  }
  return document.body ? walk(document.body, 0) : '';
}
"""


async def take_snapshot(page: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> str:
    """Return the DOM outline of *page* as text.

    Parameters
    ----------
    page:
        A patchright async ``Page`` object.
    max_depth:
        Elements nested deeper than this below ``body`` are omitted.
    """
    result = await page.evaluate(_SNAPSHOT_JS, [max_depth, TEXT_LIMIT])
    return str(result or "")
