"""Render documentation HTML as Markdown for the extractor prompts."""

import re

from bs4 import BeautifulSoup, Tag
from markdownify import ATX, MarkdownConverter

_FENCE_HINTS = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "sh": "bash",
    "shell": "bash",
    "console": "bash",
    "curl": "bash",
    "yml": "yaml",
}
_LANGUAGE_CLASS_RE = re.compile(r"^(?:language|lang|highlight-source)-([\w+#-]+)$")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def fence_language(node: Tag) -> str:
    """Guess a code fence language from ``class`` or ``data-lang`` attributes."""
    hint = node.get("data-lang") or node.get("data-language")
    if isinstance(hint, str) and hint:
        return _FENCE_HINTS.get(hint.lower(), hint.lower())
    for cls in node.get("class") or []:
        match = _LANGUAGE_CLASS_RE.match(cls)
        if match:
            lang = match.group(1).lower()
            return _FENCE_HINTS.get(lang, lang)
    return ""


class ApiDocMarkdownConverter(MarkdownConverter):
    """markdownify with fenced samples, pipe tables and no images."""

    def __init__(self, **options):
        options.setdefault("heading_style", ATX)
        options.setdefault("bullets", "-")
        super().__init__(**options)

    def convert_pre(self, el, text, parent_tags=None, **kwargs):
        code = el.find("code")
        source = (code if code is not None else el).get_text()
        lang = fence_language(code) if code is not None else ""
        lang = lang or fence_language(el)
        source = source.strip("\n")
        return f"\n\n```{lang}\n{source}\n```\n\n"

    def convert_code(self, el, text, parent_tags=None, **kwargs):
        if el.find_parent("pre") is not None:
            return text
        raw = el.get_text()
        tick = "``" if "`" in raw else "`"
        pad = " " if tick == "``" else ""
        return f"{tick}{pad}{raw}{pad}{tick}"

    def convert_table(self, el, text, parent_tags=None, **kwargs):
        grid = [
            [_cell(c) for c in row.find_all(["th", "td"], recursive=False)]
            for row in el.find_all("tr")
        ]
        grid = [row for row in grid if row]
        if not grid:
            return ""
        width = max(len(row) for row in grid)
        grid = [row + [""] * (width - len(row)) for row in grid]
        lines = ["| " + " | ".join(grid[0]) + " |", "|" + " --- |" * width]
        lines.extend("| " + " | ".join(row) + " |" for row in grid[1:])
        return "\n\n" + "\n".join(lines) + "\n\n"

    def convert_img(self, el, text, parent_tags=None, **kwargs):
        return ""

    convert_svg = convert_img


def _cell(cell: Tag) -> str:
    return cell.get_text(" ", strip=True).replace("|", "\\|")


def html_to_markdown(html: str) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    for node in soup(["script", "style", "noscript", "template"]):
        node.decompose()
    rendered = ApiDocMarkdownConverter().convert_soup(soup)
    return _BLANK_RUN_RE.sub("\n\n", rendered).strip()
