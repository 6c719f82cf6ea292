from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

from promptsite.errors import DuplicateFile, FileNotFound, ProtectedFile
from promptsite.models import CanonicalProject, ProjectFile

log = logging.getLogger(__name__)

PROTECTED_PATHS = frozenset(
    {
        "index.html",
        "html/index.html",
        "style.css",
        "css/style.css",
        "script.js",
        "js/script.js",
    }
)


@dataclass
class TreeNode:
    name: str
    path: str
    is_folder: bool
    file: Optional[ProjectFile] = None
    children: List["TreeNode"] = field(default_factory=list)


class VirtualProject:
    """In-memory set of named files plus the currently active one.

    Folders are not stored; they are whatever '/'-separated prefixes the
    file names share.
    """

    def __init__(self, files: Optional[Iterable[ProjectFile]] = None, active: Optional[str] = None) -> None:
        self._files: List[ProjectFile] = []
        self._active: Optional[str] = None
        for f in files or []:
            self.add_file(f)
        if active is not None:
            self.select_active(active)
        if self._active is None:
            self._active = self._fallback_active()

    @classmethod
    def from_canonical(cls, project: CanonicalProject, active: Optional[str] = None) -> "VirtualProject":
        return cls([f.model_copy() for f in project.files], active=active)

    def to_canonical(self) -> CanonicalProject:
        return CanonicalProject(files=[f.model_copy() for f in self._files])

    @property
    def files(self) -> List[ProjectFile]:
        return list(self._files)

    @property
    def active(self) -> Optional[ProjectFile]:
        return self.get(self._active) if self._active else None

    def names(self) -> List[str]:
        return [f.name for f in self._files]

    def get(self, name: str) -> Optional[ProjectFile]:
        for f in self._files:
            if f.name == name:
                return f
        return None

    def files_of_kind(self, kind: str) -> List[ProjectFile]:
        return [f for f in self._files if f.kind == kind]

    def add_file(self, file: ProjectFile) -> ProjectFile:
        if self.get(file.name) is not None:
            raise DuplicateFile(file.name)
        self._files.append(file)
        return file

    def delete_file(self, name: str) -> None:
        if name in PROTECTED_PATHS:
            raise ProtectedFile(name)
        target = self.get(name)
        if target is None:
            raise FileNotFound(name)
        self._files.remove(target)
        if self._active == name:
            self._active = self._fallback_active()
            log.debug("project: active file deleted, now %s", self._active)

    def update_file(self, name: str, content: str) -> ProjectFile:
        target = self.get(name)
        if target is None:
            raise FileNotFound(name)
        target.content = content
        return target

    def select_active(self, name: str) -> Optional[ProjectFile]:
        target = self.get(name)
        if target is not None:
            self._active = target.name
        return target

    def _fallback_active(self) -> Optional[str]:
        html = self.files_of_kind("html")
        if html:
            return html[0].name
        if self._files:
            return self._files[0].name
        return None

    def resolve_href(self, href: str) -> Optional[str]:
        """Map a link target from the preview to a file name, or None."""
        target = unquote((href or "").strip())
        for sep in ("#", "?"):
            target = target.split(sep, 1)[0]
        if not target:
            return None
        candidates: List[str] = []
        stripped = target
        while stripped.startswith("./"):
            stripped = stripped[2:]
        stripped = stripped.lstrip("/")
        candidates.append(stripped)
        active = self._active or ""
        folder = posixpath.dirname(active)
        if folder and not target.startswith("/"):
            candidates.append(posixpath.normpath(posixpath.join(folder, target)))
        for name in candidates:
            if name and self.get(name) is not None:
                return name
        return None

    def tree(self) -> List[TreeNode]:
        """Folder tree derived from file names; folders first, then names, at every level."""
        # keyed by (name, is_folder); a file and a folder can share a name
        root: Dict[Tuple[str, bool], TreeNode] = {}
        children: Dict[str, Dict[Tuple[str, bool], TreeNode]] = {"": root}
        for f in self._files:
            parts = [p for p in f.name.split("/") if p]
            path = ""
            for idx, part in enumerate(parts):
                parent = path
                path = f"{path}/{part}" if path else part
                level = children.setdefault(parent, {})
                is_file = idx == len(parts) - 1
                key = (part, not is_file)
                if key in level:
                    continue
                level[key] = TreeNode(name=part, path=path, is_folder=not is_file, file=f if is_file else None)
                if not is_file:
                    children[path] = {}
        return _sorted_nodes(root, children)


def _sorted_nodes(level: Dict[Tuple[str, bool], TreeNode], children: Dict[str, Dict[Tuple[str, bool], TreeNode]]) -> List[TreeNode]:
    nodes = sorted(level.values(), key=lambda n: (not n.is_folder, n.name))
    for node in nodes:
        if node.is_folder:
            node.children = _sorted_nodes(children.get(node.path, {}), children)
    return nodes
