from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from promptsite.errors import InvalidFormat
from promptsite.models import CanonicalProject, ProjectFile, kind_for_name

log = logging.getLogger(__name__)

INDEX_HTML = "index.html"
STYLE_CSS = "style.css"
SCRIPT_JS = "script.js"

RAW_LOG_LIMIT = 500

_OPEN_FENCE_RE = re.compile(r"^```[ \t]*(?:json|html)?[ \t]*\r?\n?", re.IGNORECASE)
_CLOSE_FENCE_RE = re.compile(r"\r?\n?```\s*$")
_HTML_TAG_RE = re.compile(r"<(?:!doctype|[a-z][a-z0-9-]*)\b[^<>]*>", re.IGNORECASE)
_BODY_OPEN_RE = re.compile(r"<body\b[^>]*>", re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)


def strip_fences(text: str) -> str:
    """Drop a leading ```/```json/```html marker and a trailing ``` if present."""
    t = (text or "").strip()
    if t.startswith("```"):
        t = _OPEN_FENCE_RE.sub("", t, count=1)
        t = _CLOSE_FENCE_RE.sub("", t, count=1)
    elif t.endswith("```"):
        t = t[:-3]
    return t.strip()


def repair_control_chars(text: str) -> str:
    """Escape raw newlines, carriage returns and tabs that sit inside JSON string literals.

    Whitespace between tokens is left alone; already-escaped sequences are
    untouched because the walker tracks backslashes.
    """
    out: List[str] = []
    in_str = False
    esc = False
    for ch in text or "":
        if in_str:
            if esc:
                esc = False
                out.append(ch)
                continue
            if ch == "\\":
                esc = True
                out.append(ch)
                continue
            if ch == '"':
                in_str = False
                out.append(ch)
                continue
            if ch == "\n":
                out.append("\\n")
                continue
            if ch == "\r":
                out.append("\\r")
                continue
            if ch == "\t":
                out.append("\\t")
                continue
            out.append(ch)
            continue
        if ch == '"':
            in_str = True
        out.append(ch)
    return "".join(out)


def _load_json(text: str) -> Any:
    """Parse JSON, retrying once on the control-character-repaired text.

    If the repair does not help, the original error is raised.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as original:
        repaired = repair_control_chars(text)
        if repaired == text:
            raise
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError:
            raise original
        log.info("normalizer: parsed after control-character repair")
        return data


def extract_body(html: str) -> str:
    """Return the markup between the first <body ...> and the last </body>; whole text if no body tag."""
    text = html or ""
    opening = _BODY_OPEN_RE.search(text)
    if not opening:
        return text
    rest = text[opening.end():]
    closings = list(_BODY_CLOSE_RE.finditer(rest))
    if closings:
        rest = rest[: closings[-1].start()]
    return rest.strip()


@dataclass
class MultiFile:
    files: Dict[str, str]


@dataclass
class LegacyTriple:
    html: str
    css: str = ""
    js: str = ""


@dataclass
class BareHtml:
    html: str


@dataclass
class Invalid:
    reason: str
    details: List[str] = field(default_factory=list)


ParsedReply = Union[MultiFile, LegacyTriple, BareHtml, Invalid]


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return None


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned.lstrip("/")


def _files_mapping(raw_files: Any) -> Optional[Dict[str, str]]:
    """Accept {path: content} or [{name|path, content}]; None when the value has neither shape."""
    mapping: Dict[str, str] = {}
    if isinstance(raw_files, dict):
        for name, content in raw_files.items():
            text = _as_text(content)
            if text is None:
                log.warning("normalizer: dropping non-text entry %r", name)
                continue
            cleaned = _clean_name(str(name))
            if cleaned:
                mapping[cleaned] = text
        return mapping
    if isinstance(raw_files, list):
        for item in raw_files:
            if not isinstance(item, dict):
                continue
            name = item.get("name") or item.get("path") or item.get("filename")
            text = _as_text(item.get("content"))
            if not isinstance(name, str) or not _clean_name(name) or text is None:
                continue
            mapping[_clean_name(name)] = text
        return mapping
    return None


def _detect_multi_file(doc: Any) -> Optional[ParsedReply]:
    if not isinstance(doc, dict) or "files" not in doc:
        return None
    mapping = _files_mapping(doc.get("files"))
    if mapping is None:
        return Invalid("'files' must be an object or a list of files")
    if not any(name == INDEX_HTML or name.endswith("/" + INDEX_HTML) for name in mapping):
        return Invalid("'files' has no index.html entry")
    return MultiFile(mapping)


def _detect_legacy_triple(doc: Any) -> Optional[ParsedReply]:
    if not isinstance(doc, dict):
        return None
    html = doc.get("html")
    if not isinstance(html, str) or not html.strip():
        return None
    css = _as_text(doc.get("css")) or ""
    js = _as_text(doc.get("js")) or ""
    return LegacyTriple(html=html, css=css, js=js)


_DOC_DETECTORS: Tuple[Callable[[Any], Optional[ParsedReply]], ...] = (
    _detect_multi_file,
    _detect_legacy_triple,
)


def detect_shape(text: str) -> ParsedReply:
    """Classify a fence-stripped reply. Detectors run in priority order; the first usable shape wins."""
    t = (text or "").strip()
    if not t:
        return Invalid("empty reply")
    try:
        doc = _load_json(t)
    except json.JSONDecodeError as exc:
        # Only a reply that is markup from its first character counts as HTML
        if t.startswith("<") and _HTML_TAG_RE.match(t):
            return BareHtml(t)
        return Invalid("reply is neither JSON nor HTML", [str(exc)])
    rejected: Optional[Invalid] = None
    for detector in _DOC_DETECTORS:
        parsed = detector(doc)
        if isinstance(parsed, Invalid):
            # keep looking; report this reason only if nothing else matches
            rejected = rejected or parsed
            continue
        if parsed is not None:
            return parsed
    if rejected is not None:
        return rejected
    if isinstance(doc, dict):
        keys = ", ".join(sorted(str(k) for k in doc.keys())[:10])
        return Invalid("JSON has no recognized keys", [f"keys: {keys or '(none)'}"])
    return Invalid(f"JSON root is {type(doc).__name__}, expected an object")


def _with_defaults(mapping: Dict[str, str]) -> Dict[str, str]:
    out = dict(mapping)
    kinds = {kind_for_name(n) for n in out}
    if "css" not in kinds:
        out[STYLE_CSS] = ""
    if "js" not in kinds:
        out[SCRIPT_JS] = ""
    return out


def to_project(parsed: ParsedReply) -> CanonicalProject:
    if isinstance(parsed, Invalid):
        raise InvalidFormat()
    if isinstance(parsed, MultiFile):
        files: List[ProjectFile] = []
        for name, content in _with_defaults(parsed.files).items():
            kind = kind_for_name(name)
            if kind is None:
                log.warning("normalizer: dropping unsupported file %r", name)
                continue
            files.append(ProjectFile(name=name, kind=kind, content=content))
        return CanonicalProject(files=files)
    if isinstance(parsed, LegacyTriple):
        html, css, js = parsed.html, parsed.css, parsed.js
    else:
        html, css, js = parsed.html, "", ""
    return CanonicalProject(
        files=[
            ProjectFile(name=INDEX_HTML, kind="html", content=html),
            ProjectFile(name=STYLE_CSS, kind="css", content=css),
            ProjectFile(name=SCRIPT_JS, kind="js", content=js),
        ]
    )


def normalize(raw: str) -> CanonicalProject:
    """Turn a raw model reply into a CanonicalProject or raise InvalidFormat."""
    parsed = detect_shape(strip_fences(raw))
    if isinstance(parsed, Invalid):
        log.warning(
            "normalizer: invalid format (%s %s); raw=%r",
            parsed.reason,
            "; ".join(parsed.details),
            (raw or "")[:RAW_LOG_LIMIT],
        )
        raise InvalidFormat()
    log.info("normalizer: accepted shape=%s", type(parsed).__name__)
    return to_project(parsed)
