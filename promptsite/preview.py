from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from promptsite import render as render_mod
from promptsite.models import MessageType, NavigateMessage
from promptsite.project import VirtualProject

log = logging.getLogger(__name__)


@dataclass
class NavigationResult:
    ok: bool
    active_file: Optional[str]
    document: Optional[str]
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok, "activeFile": self.active_file, "document": self.document}
        if self.error:
            payload["error"] = self.error
        return payload


class PreviewHost:
    """Host side of the sandboxed preview.

    Holds the project being previewed and answers messages posted by the
    interceptor script; the document is rebuilt on every read.
    """

    def __init__(self, project: VirtualProject) -> None:
        self.project = project

    @property
    def document(self) -> Optional[str]:
        active = self.project.active
        return render_mod.render(self.project.files, active.name if active else None)

    def _current(self, ok: bool, error: Optional[str] = None) -> NavigationResult:
        active = self.project.active
        return NavigationResult(ok=ok, active_file=active.name if active else None, document=self.document, error=error)

    def navigate(self, href: str) -> NavigationResult:
        name = self.project.resolve_href(href)
        if name is None:
            log.info("preview: link target not in project href=%r", href)
            return self._current(False, f"File not found: {href}")
        self.project.select_active(name)
        return self._current(True)

    def handle_message(self, message: Union[NavigateMessage, Dict[str, Any]]) -> NavigationResult:
        if not isinstance(message, NavigateMessage):
            try:
                message = NavigateMessage.model_validate(message)
            except ValidationError:
                log.debug("preview: ignoring malformed message %r", message)
                return self._current(False, "Unsupported message")
        if message.type is MessageType.NAVIGATE:
            return self.navigate(message.href)
        return self._current(False, "Unsupported message")
