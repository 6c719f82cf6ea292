from __future__ import annotations

import html as htmllib
import os
import re
from typing import Iterable, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from promptsite.llm_parsing import extract_body
from promptsite.models import MessageType, ProjectFile

_TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

_env = Environment(
    loader=FileSystemLoader(_TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml"]),
    enable_async=False,
)

_INDEX_PATHS = ("index.html", "html/index.html")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_SCRIPT_CLOSE_RE = re.compile(r"</(script)", re.IGNORECASE)
_STYLE_CLOSE_RE = re.compile(r"</(style)", re.IGNORECASE)
_HEAD_RE = re.compile(r"<head\b[^>]*>(.*?)</head\s*>", re.IGNORECASE | re.DOTALL)
_INLINE_STYLE_RE = re.compile(r"<style\b[^>]*>(.*?)</style\s*>", re.IGNORECASE | re.DOTALL)
_INLINE_SCRIPT_RE = re.compile(r"<script\b([^>]*)>(.*?)</script\s*>", re.IGNORECASE | re.DOTALL)


def select_html(files: Iterable[ProjectFile], active: Optional[str] = None) -> Optional[ProjectFile]:
    """Active html file, else the conventional index, else the first html file."""
    html_files = [f for f in files if f.kind == "html"]
    if not html_files:
        return None
    if active:
        for f in html_files:
            if f.name == active:
                return f
    for path in _INDEX_PATHS:
        for f in html_files:
            if f.name == path:
                return f
    return html_files[0]


def _joined(files: List[ProjectFile], kind: str) -> str:
    return "\n".join(f.content for f in files if f.kind == kind)


def _title_of(html: str, default: str) -> str:
    m = _TITLE_RE.search(html or "")
    if m and m.group(1).strip():
        return htmllib.unescape(m.group(1).strip())
    return default


def head_assets(html: str) -> Tuple[str, str]:
    """Inline <style> and <script> bodies from the page head. Scripts with a src are skipped."""
    m = _HEAD_RE.search(html or "")
    if not m:
        return "", ""
    head = m.group(1)
    styles = [s.strip() for s in _INLINE_STYLE_RE.findall(head) if s.strip()]
    scripts = [
        body.strip()
        for attrs, body in _INLINE_SCRIPT_RE.findall(head)
        if "src=" not in attrs.lower() and body.strip()
    ]
    return "\n".join(styles), "\n".join(scripts)


def _merged(*parts: str) -> str:
    return "\n".join(p for p in parts if p)


def navigation_script() -> str:
    return _env.get_template("navigate.js").render(message_type=MessageType.NAVIGATE.value)


def compose_document(html: str, css: str = "", js: str = "", *, title: str = "Generated Website", nav_script: str = "") -> str:
    """Wrap body markup, one style block and one script block into a complete document.

    Inline styles and scripts from the page head go ahead of the bundled css and js.
    """
    head_css, head_js = head_assets(html)
    css = _merged(head_css, css or "")
    js = _merged(head_js, js or "")
    return _env.get_template("page.html").render(
        title=_title_of(html, title),
        body=extract_body(html),
        css=_STYLE_CLOSE_RE.sub(r"<\\/\1", css or ""),
        js=_SCRIPT_CLOSE_RE.sub(r"<\\/\1", js or ""),
        nav_script=nav_script,
    )


def render(files: Iterable[ProjectFile], active: Optional[str] = None) -> Optional[str]:
    """Build the preview document for the current project state; None when there is no html file.

    Every css file is concatenated (project order) into one style block and
    every js file into one script block, with the link interceptor ahead of it.
    Nothing is cached: call again whenever files or the selection change.
    """
    file_list = list(files)
    page = select_html(file_list, active)
    if page is None:
        return None
    return compose_document(
        page.content,
        _joined(file_list, "css"),
        _joined(file_list, "js"),
        title="Preview",
        nav_script=navigation_script(),
    )
