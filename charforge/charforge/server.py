"""FastAPI application exposing character generation and agent control."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from charforge.agent_client import send_message
from charforge.config import Config
from charforge.errors import CharforgeError
from charforge.extractor import extract
from charforge.knowledge import extract_knowledge
from charforge.launcher import (
    AgentLaunchError,
    AgentLauncher,
    clean_output,
    filter_stderr,
    provider_env,
)
from charforge.normalizer import coerce_document
from charforge.store import CharacterNotFoundError, CharacterStore
from charforge.synthesizer import generate_character, refine_character

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# REQUEST MODELS
# =============================================================================
# Fields are optional so that missing parameters can be reported as 400
# with a readable message instead of a schema error.


class GenerateRequest(BaseModel):
    prompt: str | None = None
    model: str | None = None


class RefineRequest(BaseModel):
    prompt: str | None = None
    model: str | None = None
    currentCharacter: dict[str, Any] | None = None


class FixJsonRequest(BaseModel):
    content: str | None = None


class StartAgentRequest(BaseModel):
    characterName: str | None = None


class ChatRequest(BaseModel):
    characterName: str | None = None
    message: str | None = None


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_store(request: Request) -> CharacterStore:
    return request.app.state.store


def get_launcher(request: Request) -> AgentLauncher:
    return request.app.state.launcher


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=400, detail=message)


# =============================================================================
# CHARACTER GENERATION
# =============================================================================


@router.post("/api/generate-prompt-character")
async def generate_prompt_character(
    body: GenerateRequest | None = None,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    config: Config = Depends(get_config),
):
    """Generate a character from a free-text description."""
    body = body or GenerateRequest()
    if not body.prompt:
        raise _bad_request("Prompt is required")
    if not body.model:
        raise _bad_request("Model is required")
    if not x_api_key:
        raise _bad_request("API key is required")

    llm = config.llm.with_overrides(model=body.model, api_key=x_api_key)
    result = await generate_character(body.prompt, llm=llm)
    return result.to_json()


@router.post("/api/refine-character")
async def refine_prompt_character(
    body: RefineRequest | None = None,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    config: Config = Depends(get_config),
):
    """Refine an existing character; its knowledge is left untouched."""
    body = body or RefineRequest()
    if not body.prompt or not body.model or not body.currentCharacter:
        raise _bad_request("Prompt, model, and current character data are required")
    if not x_api_key:
        raise _bad_request("API key is required")

    llm = config.llm.with_overrides(model=body.model, api_key=x_api_key)
    result = await refine_character(body.prompt, body.currentCharacter, llm=llm)
    return result.to_json()


@router.post("/api/fix-json")
async def fix_json(body: FixJsonRequest | None = None):
    """Recover a JSON object from hand-pasted model output."""
    body = body or FixJsonRequest()
    if not body.content:
        raise _bad_request("Content is required")
    return {"character": extract(body.content)}


@router.post("/api/process-files")
async def process_files(files: list[UploadFile] | None = File(default=None)):
    """Turn uploaded documents into knowledge sentences."""
    if not files:
        raise _bad_request("No files uploaded")

    knowledge: list[str] = []
    for upload in files:
        filename = upload.filename or "upload"
        try:
            data = await upload.read()
            knowledge.extend(extract_knowledge(filename, data, upload.content_type))
        except Exception:
            logger.warning("Error processing file %s", filename, exc_info=True)
        finally:
            await upload.close()
    return {"knowledge": knowledge}


# =============================================================================
# STORAGE AND AGENT RUNTIME
# =============================================================================


@router.post("/save-json")
async def save_json(
    data: dict[str, Any] = Body(...),
    store: CharacterStore = Depends(get_store),
):
    """Persist a character document."""
    path = store.save(coerce_document(data))
    return {"success": True, "id": path.stem}


@router.post("/generate-character")
async def start_latest_character(
    store: CharacterStore = Depends(get_store),
    launcher: AgentLauncher = Depends(get_launcher),
):
    """Boot the agent runtime with the most recently saved character."""
    latest = store.latest()
    if latest is None:
        raise _bad_request("No character files found")
    logger.info("Latest character file: %s", latest.name)

    character = store.read(latest)
    result = await launcher.start(str(latest.resolve()), extra_env=provider_env(character))

    warnings = clean_output(filter_stderr(result.stderr))
    if warnings:
        logger.warning("Script stderr (filtered): %s", warnings)

    return {
        "message": "Character loaded and agent started successfully!",
        "status": "success",
        "stdout": clean_output(result.stdout),
        "character": character.to_json(),
    }


@router.post("/start-agent")
async def start_agent(
    body: StartAgentRequest | None = None,
    launcher: AgentLauncher = Depends(get_launcher),
):
    body = body or StartAgentRequest()
    if not body.characterName:
        raise _bad_request("Missing required field: characterName")
    await launcher.start_named(body.characterName)
    return {
        "success": True,
        "message": f"Agent for {body.characterName} is starting...",
    }


@router.post("/chat")
async def chat(
    body: ChatRequest | None = None,
    config: Config = Depends(get_config),
    store: CharacterStore = Depends(get_store),
):
    """Relay a message to the running agent for a stored character."""
    body = body or ChatRequest()
    if not body.characterName or not body.message:
        raise _bad_request("Missing required parameters")

    character = store.load(body.characterName)
    reply = await send_message(config.agent_url, character.name, body.message)
    return {"character": character.to_json(), "response": reply}


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "charforge"}


# =============================================================================
# ERROR HANDLERS
# =============================================================================


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse({"error": "Not Found", "path": request.url.path}, status_code=404)
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        where = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{where}: {error['msg']}" if where else error["msg"])
    return JSONResponse(
        {"error": f"Invalid request: {'; '.join(problems)}"}, status_code=400
    )


async def _not_found(request: Request, exc: CharacterNotFoundError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=404)


async def _launch_failed(request: Request, exc: AgentLaunchError) -> JSONResponse:
    logger.error("Script execution error: %s", exc)
    return JSONResponse(
        {
            "error": "Script execution failed",
            "details": str(exc),
            "stdout": clean_output(exc.stdout),
            "stderr": clean_output(exc.stderr),
        },
        status_code=500,
    )


async def _charforge_error(request: Request, exc: CharforgeError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "Internal server error", "details": str(exc)}, status_code=500
    )


# =============================================================================
# APPLICATION
# =============================================================================


def create_app(config: Config | None = None) -> FastAPI:
    """Build the application; state lives on ``app.state``, not in globals."""
    if config is None:
        config = Config.from_env()

    launcher = AgentLauncher(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Server shutting down, stopping agent processes...")
        await launcher.stop()

    app = FastAPI(title="charforge", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.store = CharacterStore(config.characters_dir)
    app.state.launcher = launcher

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "Authorization"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.add_exception_handler(CharacterNotFoundError, _not_found)
    app.add_exception_handler(AgentLaunchError, _launch_failed)
    app.add_exception_handler(CharforgeError, _charforge_error)
    app.add_exception_handler(Exception, _unexpected_error)

    app.include_router(router)
    return app
