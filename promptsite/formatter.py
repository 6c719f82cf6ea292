"""Best-effort re-indentation for generated html/css/js.

These are not parsers. They only make minified model output readable in an
editor and fall back to the input untouched when anything goes wrong.
"""
from __future__ import annotations

import logging
import re
from typing import List

log = logging.getLogger(__name__)

INDENT = "  "

_VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}
_TAG_SPLIT_RE = re.compile(r"(<[^>]+>)")
_TAG_NAME_RE = re.compile(r"<([a-z0-9-]+)", re.IGNORECASE)


def format_code(code: str, kind: str) -> str:
    if not code:
        return ""
    formatter = {"html": format_html, "css": format_css, "js": format_js}.get(kind)
    if formatter is None:
        return code
    try:
        return formatter(code)
    except (ValueError, IndexError) as exc:
        log.warning("formatter: %s formatting failed: %r", kind, exc)
        return code


def format_html(html: str) -> str:
    lines: List[str] = []
    depth = 0
    clean = re.sub(r">\s+<", "><", html).strip()
    for part in (p for p in _TAG_SPLIT_RE.split(clean) if p):
        if part.startswith("</"):
            depth = max(0, depth - 1)
            lines.append(INDENT * depth + part)
        elif part.startswith("<") and not part.startswith("<!"):
            lines.append(INDENT * depth + part)
            m = _TAG_NAME_RE.match(part)
            name = m.group(1).lower() if m else ""
            if name and name not in _VOID_TAGS and not part.endswith("/>"):
                depth += 1
        elif part.strip():
            lines.append(INDENT * depth + part.strip())
    return "\n".join(lines).strip()


def format_css(css: str) -> str:
    clean = re.sub(r"\s+", " ", css)
    clean = re.sub(r"\s*\{\s*", "{", clean)
    clean = re.sub(r"\s+\}", "}", clean)
    clean = re.sub(r";\s+", ";", clean)
    out: List[str] = []
    depth = 0
    for i, ch in enumerate(clean):
        if ch == "{":
            depth += 1
            out.append(" {\n" + INDENT * depth)
        elif ch == "}":
            depth = max(0, depth - 1)
            out.append("\n" + INDENT * depth + "}")
            if i + 1 < len(clean) and clean[i + 1] != "}":
                out.append("\n" + INDENT * depth)
        elif ch == ";":
            out.append(";\n" + INDENT * depth)
        elif ch == " " and out and out[-1].endswith((" ", "\n")):
            continue
        else:
            out.append(ch)
    text = "".join(out)
    return "\n".join(line.rstrip() for line in text.splitlines() if line.strip()).strip()


def format_js(js: str) -> str:
    out: List[str] = []
    depth = 0
    quote = ""
    escaped = False
    for ch in js.strip():
        if quote:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
            continue
        if ch in "\"'`":
            quote = ch
            out.append(ch)
        elif ch == "{":
            depth += 1
            out.append(" {\n" + INDENT * depth)
        elif ch == "}":
            depth = max(0, depth - 1)
            out.append("\n" + INDENT * depth + "}")
        elif ch == ";":
            out.append(";\n" + INDENT * depth)
        elif ch == "\n":
            out.append("\n" + INDENT * depth)
        else:
            out.append(ch)
    text = "".join(out)
    return "\n".join(line.rstrip() for line in text.splitlines() if line.strip()).strip()
