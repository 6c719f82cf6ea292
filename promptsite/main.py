import logging
import os
import time
import uuid
from typing import Any, Dict, List

from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError

from promptsite import llm_client, pipeline
from promptsite.errors import GenerationError, ProjectError
from promptsite.formatter import format_code
from promptsite.models import FormatRequest, GenerateRequest, NavigateRequest, PreviewRequest, ProjectFile
from promptsite.preview import PreviewHost
from promptsite.project import TreeNode, VirtualProject
from promptsite.ratelimit import get_default_controller
from promptsite.storage import storage

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

log = logging.getLogger(__name__)

app = FastAPI(title="promptsite")

allow_origins = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = str(uuid.uuid4())
    start = time.time()
    request.state.request_id = rid
    response = None
    try:
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response
    finally:
        dur_ms = int((time.time() - start) * 1000)
        log.info(
            "rid=%s method=%s path=%s status=%s dur_ms=%d",
            rid,
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            dur_ms,
        )


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    headers: Dict[str, str] = {}
    if exc.wait_seconds is not None:
        headers["Retry-After"] = str(exc.wait_seconds)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(ProjectError)
async def project_error_handler(request: Request, exc: ProjectError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "file": exc.name})


def _first_error_message(ve: ValidationError) -> str:
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []))
        if loc == "prompt" and e.get("type") == "string_too_short":
            return "Please describe your website in at least 10 characters"
        return f"{loc or 'body'}: {e.get('msg', 'invalid')}"
    return "Invalid request"


def _tree_payload(nodes: List[TreeNode]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for node in nodes:
        item: Dict[str, Any] = {"name": node.name, "path": node.path, "type": "folder" if node.is_folder else "file"}
        if node.is_folder:
            item["children"] = _tree_payload(node.children)
        elif node.file is not None:
            item["kind"] = node.file.kind
        out.append(item)
    return out


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/llm/status")
def llm_status_endpoint() -> Dict[str, Any]:
    info = llm_client.status()
    info["admission"] = get_default_controller().snapshot()
    return info


@app.post("/api/generate")
def generate_endpoint(payload: Dict[str, Any] = Body(...)):
    try:
        req = GenerateRequest.model_validate(payload)
    except ValidationError as ve:
        return JSONResponse(status_code=400, content={"error": _first_error_message(ve)})

    try:
        generation = pipeline.run_generation(req.prompt)
    except GenerationError as exc:
        log.warning("generate failed code=%s: %s", exc.code, exc.message)
        raise
    except Exception:
        log.exception("generate: unexpected error")
        raise GenerationError()
    return JSONResponse(generation.model_dump(by_alias=True, mode="json"))


@app.get("/api/generations")
def list_generations_endpoint():
    return JSONResponse([g.model_dump(by_alias=True, mode="json") for g in storage.list_generations()])


@app.get("/api/generations/{generation_id}")
def get_generation_endpoint(generation_id: str):
    generation = storage.get_generation(generation_id)
    if generation is None:
        return JSONResponse(status_code=404, content={"error": "Generation not found"})
    return JSONResponse(generation.model_dump(by_alias=True, mode="json"))


@app.delete("/api/generations/{generation_id}")
def delete_generation_endpoint(generation_id: str):
    if not storage.delete_generation(generation_id):
        return JSONResponse(status_code=404, content={"error": "Generation not found"})
    return {"success": True}


@app.post("/api/preview", response_class=HTMLResponse)
def preview_endpoint(req: PreviewRequest):
    project = VirtualProject(req.files, active=req.active_file)
    document = PreviewHost(project).document
    if document is None:
        return JSONResponse(status_code=404, content={"error": "No HTML file to preview"})
    return HTMLResponse(document)


@app.post("/api/preview/navigate")
def preview_navigate_endpoint(req: NavigateRequest):
    project = VirtualProject(req.files, active=req.active_file)
    result = PreviewHost(project).handle_message(req.message)
    if not result.ok:
        return JSONResponse(status_code=404, content=result.to_payload())
    return result.to_payload()


@app.post("/api/project/tree")
def project_tree_endpoint(files: List[ProjectFile] = Body(..., embed=True)):
    return {"tree": _tree_payload(VirtualProject(files).tree())}


@app.post("/api/format")
def format_endpoint(req: FormatRequest) -> Dict[str, str]:
    return {"content": format_code(req.content, req.kind)}
