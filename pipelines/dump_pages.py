"""
DOM dump pipeline.

Captures a list of pages so they can be compared later:

  <out>/<name>.dom              parsed document
  <out>/<name>.dom.manifest     "<url>, <epoch ms>"
  <out>/html_sources/<name>.html  raw page source
  <out>/manifest.txt            one line per captured page

<name> is "<host>.<md5 of the url>". Failed pages are logged, written to the
dead-letter file and skipped.
"""

import hashlib
import json
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from tamperwatch.dom import DOM_DUMP_SUFFIX, parse_document, store_document
from tamperwatch.fetch import Backoff, CircuitBreaker, FetchSettings, RateLimiter, fetch_page
from tamperwatch.report import write_status

MANIFEST_HEADER = "Start capture. Version 1.0\n"


def dump_name(url: str) -> str:
    """``<host>.<md5 hex without leading zeros>.dom``."""
    host = urlparse(url).hostname or ""
    digest = int(hashlib.md5(url.encode("utf-8")).hexdigest(), 16)
    return f"{host}.{digest:x}{DOM_DUMP_SUFFIX}"


def read_urls(path: Path) -> List[str]:
    """URLs from a text file; blank lines and ``#`` comments are skipped."""
    if not path.exists():
        raise FileNotFoundError(f"URL file not found: {path}")
    return [
        line.strip()
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]


def _append(path: Path, text: str):
    with path.open("a", encoding="utf-8") as f:
        f.write(text)


async def capture_one(
    url: str,
    out_dir: Path,
    rl: RateLimiter,
    settings: FetchSettings,
    breaker: CircuitBreaker,
    log,
) -> Path:
    """Fetch, parse and store a single page. Returns the dump path."""
    log.info("fetching", extra={"url": url, "step": "fetch"})
    html = await fetch_page(url, rl, settings=settings, backoff=Backoff(), breaker=breaker)

    name = dump_name(url)
    source = out_dir / "html_sources" / name.replace(DOM_DUMP_SUFFIX, ".html")
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_text(html, encoding="utf-8")

    dump = store_document(parse_document(html), out_dir / name)
    stamp = int(time.time() * 1000)
    (out_dir / f"{name}.manifest").write_text(f"{url}, {stamp}", encoding="utf-8")
    _append(out_dir / "manifest.txt", f"{url}, {stamp}\n")

    log.info("stored", extra={"url": url, "step": "store", "dump": name})
    return dump


async def run(
    urls: List[str],
    out_dir: Path,
    dead_letter: Path,
    health_path: Path,
    log,
    rate_per_sec: float = 1.0,
    settings: Optional[FetchSettings] = None,
) -> dict:
    """
    Capture every URL into ``out_dir``.

    Pages are fetched one after the other so captures of the same site do
    not overlap.
    """
    settings = settings or FetchSettings()
    rl = RateLimiter(rate_per_sec=rate_per_sec, capacity=1)
    breaker = CircuitBreaker()

    out_dir.mkdir(parents=True, exist_ok=True)
    dead_letter.parent.mkdir(parents=True, exist_ok=True)
    _append(out_dir / "manifest.txt", MANIFEST_HEADER)

    ok, bad = 0, 0
    for url in urls:
        try:
            await capture_one(url, out_dir, rl, settings, breaker, log)
            ok += 1
        except Exception as e:
            log.warning(
                "capture failed",
                extra={"url": url, "step": "fetch", "error_code": type(e).__name__},
            )
            _append(dead_letter, json.dumps({"url": url, "error": str(e)}) + "\n")
            bad += 1

    summary = {"command": "dump", "ok": ok, "failed": bad, "total": len(urls)}
    write_status(health_path, **summary)
    log.info("dump complete", extra={"step": "done"})
    return summary
