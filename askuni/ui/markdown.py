"""Small markdown-to-HTML renderer for assistant answers.

Covers what the assistant is instructed to produce: bold section titles,
lists, tables, code and links. Input is escaped first, so the output is
safe to inject into the page.
"""

import html
import re

_CODE_BLOCK = re.compile(r"```(\w*)\n?([\s\S]*?)```")
_TABLE_DIVIDER = re.compile(r"^\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?$")
_UNORDERED_ITEM = re.compile(r"^[-*]\s+")
_ORDERED_ITEM = re.compile(r"^\d+\.\s+")
_HEADING = re.compile(r"^(#{1,4})\s+(.*)$")

_PRE_CLASSES = "bg-gray-800 text-gray-100 rounded-lg p-3 my-2 overflow-x-auto text-xs"
_CODE_CLASSES = "bg-gray-200 text-pink-600 px-1.5 py-0.5 rounded text-xs"
_TABLE_CLASSES = "table-auto border-collapse my-2 text-xs"
_CELL_CLASSES = "border border-gray-300 px-2 py-1"


def _inline(text: str) -> str:
    text = re.sub(r"`([^`]+)`", rf'<code class="{_CODE_CLASSES}">\1</code>', text)
    text = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", text)
    text = re.sub(r"__(.+?)__", r"<strong>\1</strong>", text)
    text = re.sub(r"(?<!\w)\*([^*]+)\*(?!\w)", r"<em>\1</em>", text)
    text = re.sub(r"(?<!\w)_([^_]+)_(?!\w)", r"<em>\1</em>", text)
    return re.sub(
        r"\[([^\]]+)\]\((https?://[^)\s]+)\)",
        r'<a href="\2" class="text-blue-600 underline" target="_blank">\1</a>',
        text,
    )


def _cells(row: str) -> list[str]:
    return [cell.strip() for cell in row.strip().strip("|").split("|")]


def _render_table(rows: list[str]) -> str:
    header, body = _cells(rows[0]), [_cells(r) for r in rows[2:]]
    head = "".join(f'<th class="{_CELL_CLASSES}">{_inline(c)}</th>' for c in header)
    lines = [f'<table class="{_TABLE_CLASSES}"><thead><tr>{head}</tr></thead><tbody>']
    for cells in body:
        row = "".join(f'<td class="{_CELL_CLASSES}">{_inline(c)}</td>' for c in cells)
        lines.append(f"<tr>{row}</tr>")
    lines.append("</tbody></table>")
    return "".join(lines)


def _render_blocks(text: str) -> str:
    lines = text.split("\n")
    out: list[str] = []
    open_list: str | None = None
    i = 0

    def close_list() -> None:
        nonlocal open_list
        if open_list:
            out.append(f"</{open_list}>")
            open_list = None

    while i < len(lines):
        stripped = lines[i].strip()

        if stripped.startswith("|") and i + 1 < len(lines) and _TABLE_DIVIDER.match(lines[i + 1].strip()):
            close_list()
            table = [stripped, lines[i + 1].strip()]
            i += 2
            while i < len(lines) and lines[i].strip().startswith("|"):
                table.append(lines[i].strip())
                i += 1
            out.append(_render_table(table))
            continue

        kind = "ul" if _UNORDERED_ITEM.match(stripped) else "ol" if _ORDERED_ITEM.match(stripped) else None
        if kind:
            if open_list != kind:
                close_list()
                style = "list-disc" if kind == "ul" else "list-decimal"
                out.append(f'<{kind} class="{style} list-inside my-2 space-y-1">')
                open_list = kind
            item = (_UNORDERED_ITEM if kind == "ul" else _ORDERED_ITEM).sub("", stripped)
            out.append(f"<li>{_inline(item)}</li>")
        else:
            close_list()
            heading = _HEADING.match(stripped)
            if heading:
                out.append(f'<div class="font-semibold my-1">{_inline(heading.group(2))}</div>')
            else:
                out.append(_inline(lines[i]) + "<br>")
        i += 1

    close_list()
    return "".join(out)


def markdown_to_html(text: str) -> str:
    """Convert markdown to HTML for chat display."""
    text = html.escape(text or "(empty)", quote=False)

    parts: list[str] = []
    position = 0
    for match in _CODE_BLOCK.finditer(text):
        parts.append(_render_blocks(text[position:match.start()]))
        parts.append(f'<pre class="{_PRE_CLASSES}"><code>{match.group(2)}</code></pre>')
        position = match.end()
    parts.append(_render_blocks(text[position:]))

    return "".join(parts).removesuffix("<br>")


def plain_to_html(text: str) -> str:
    """Escape text and keep its line breaks."""
    return html.escape(text, quote=False).replace("\n", "<br>")
