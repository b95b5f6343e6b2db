"""
Google Sheets helpers: spreadsheet id parsing, tab discovery and CSV export URLs.

Public spreadsheets are read through their CSV export endpoint, one request per tab.
Tab names and gids are scraped from the spreadsheet's `/edit` page bootstrap data; gids
present in the shared link and gid 0 are always tried as well.
"""

import logging
import re
from dataclasses import dataclass

import aiohttp

_LOGGER = logging.getLogger(__name__)

_SPREADSHEET_ID = re.compile(r"https://docs\.google\.com/spreadsheets/d/([a-zA-Z0-9-_]+)")
_SHEET_METADATA = re.compile(r'"sheetId":(\d+),"title":"([^"]+)"')
_GID_PARAM = re.compile(r"[?&#]gid=(\d+)")
_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9_]")


@dataclass(frozen=True)
class SheetTab:
    """One tab of a spreadsheet."""

    gid: int
    csv_url: str
    title: str | None = None

    @property
    def table_name(self) -> str:
        """SQL-friendly table name derived from the tab title, or `tab_<gid>`."""
        if not self.title:
            return f"tab_{self.gid}"
        name = _NON_IDENTIFIER.sub("_", self.title).lower()
        return f"v_{name}" if name[:1].isdigit() else name


def extract_spreadsheet_id(url: str) -> str | None:
    """Return the spreadsheet id of a Google Sheets URL, or None if it is not one."""
    match = _SPREADSHEET_ID.search(url)
    return match.group(1) if match else None


def extract_gids(url: str) -> list[int]:
    """Return the gids referenced by a shared link (query string or fragment), in order."""
    gids: list[int] = []
    for match in _GID_PARAM.finditer(url):
        gid = int(match.group(1))
        if gid not in gids:
            gids.append(gid)
    return gids


def csv_export_url(spreadsheet_id: str, gid: int) -> str:
    """Return the CSV export URL of one tab."""
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export?format=csv&gid={gid}"


def parse_sheet_metadata(html: str) -> list[tuple[int, str]]:
    """Extract unique `(gid, title)` pairs from a spreadsheet's edit page."""
    tabs: list[tuple[int, str]] = []
    seen: set[int] = set()
    for gid_text, title in _SHEET_METADATA.findall(html):
        gid = int(gid_text)
        if gid not in seen:
            seen.add(gid)
            tabs.append((gid, title))
    return tabs


async def fetch_sheet_metadata(
    spreadsheet_id: str, timeout_seconds: float = 10.0
) -> list[tuple[int, str]]:
    """
    Fetch tab titles and gids of a public spreadsheet.

    Failures are logged and yield an empty list; discovery then falls back to the gids
    found in the shared link and to gid 0.

    Args:
        spreadsheet_id (str): The spreadsheet id.
        timeout_seconds (float): Total HTTP timeout.

    Returns:
        list[tuple[int, str]]: `(gid, title)` pairs.
    """
    url = f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout_seconds)
        ) as client:
            async with client.get(url) as response:
                if response.status != 200:
                    _LOGGER.warning(
                        f"[gsheet:fetch_sheet_metadata] HTTP {response.status} fetching metadata for {spreadsheet_id}"
                    )
                    return []
                html = await response.text()
    except (TimeoutError, aiohttp.ClientError) as e:
        _LOGGER.warning(
            f"[gsheet:fetch_sheet_metadata] Failed to fetch metadata for {spreadsheet_id}: {e}"
        )
        return []
    return parse_sheet_metadata(html)


async def discover_tabs(spreadsheet_id: str, shared_link: str) -> list[SheetTab]:
    """
    Collect candidate tabs of a spreadsheet.

    Order: tabs from the edit page metadata, then gids from the shared link, then gid 0.
    A gid is listed once; a title found later fills in a missing one.

    Args:
        spreadsheet_id (str): The spreadsheet id.
        shared_link (str): The link the datasource was configured with.

    Returns:
        list[SheetTab]: Candidate tabs; accessibility is checked when their tables are created.
    """
    titles: dict[int, str | None] = {}
    for gid, title in await fetch_sheet_metadata(spreadsheet_id):
        titles[gid] = title
    for gid in [*extract_gids(shared_link), 0]:
        titles.setdefault(gid, None)
    return [
        SheetTab(gid=gid, csv_url=csv_export_url(spreadsheet_id, gid), title=title)
        for gid, title in titles.items()
    ]
