from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ScrapedRow:
    cells: tuple[str, ...]
    header_cells: int = 0

    @property
    def is_header(self) -> bool:
        return self.header_cells > 0

    def cell(self, index: int) -> str:
        if index < len(self.cells):
            return self.cells[index]
        return ""


ScrapedTable = list[ScrapedRow]


def _cell_text(node) -> str:  # noqa: ANN001
    for sup in node.find_all("sup"):
        sup.decompose()
    return _WS_RE.sub(" ", node.get_text(" ", strip=True)).strip()


def extract_table_rows(html: str, selector: str = "table.wikitable") -> list[ScrapedTable]:
    """Return every table matching ``selector`` as rows of ``td`` text cells.

    ``th`` cells are counted but not returned, so callers can tell header rows
    apart from data rows without caring about markup.
    """
    soup = BeautifulSoup(html, "html.parser")
    tables: list[ScrapedTable] = []
    for table in soup.select(selector):
        rows: ScrapedTable = []
        for tr in table.find_all("tr"):
            if tr.find_parent("table") is not table:
                continue
            tds = tr.find_all("td", recursive=False)
            ths = tr.find_all("th", recursive=False)
            rows.append(ScrapedRow(cells=tuple(_cell_text(td) for td in tds), header_cells=len(ths)))
        tables.append(rows)
    return tables
