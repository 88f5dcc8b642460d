"""CLI entry point for charforge."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from charforge.config import Config
from charforge.errors import CharforgeError
from charforge.models import GenerationResult


def _apply_llm_overrides(
    config: Config,
    provider: str | None,
    model: str | None,
    api_base: str | None,
    api_key: str | None,
) -> Config:
    """Return *config* with LLM settings overridden by CLI flags."""
    from llmkit import get_provider, list_providers

    llm_overrides: dict[str, object] = {}
    if provider:
        pinfo = get_provider(provider)
        if not pinfo:
            click.echo(f"Unknown provider: {provider}")
            click.echo(f"Available: {', '.join(list_providers())}")
            sys.exit(1)
        if pinfo.api_base:
            llm_overrides["api_base"] = pinfo.api_base
        if not model:
            llm_overrides["model"] = pinfo.default_model
        llm_overrides["provider"] = provider
    if llm_overrides:
        config = replace(config, llm=replace(config.llm, **llm_overrides))
    if api_base:
        config = replace(config, llm=replace(config.llm, api_base=api_base))
    if model or api_key:
        config = replace(config, llm=config.llm.with_overrides(model=model, api_key=api_key))
    return config


def _llm_options(fn):
    """Attach the shared LLM connection options to a command."""
    options = [
        click.option("--provider", default=None, help="Model provider (openrouter/openai/anthropic/groq/...)"),
        click.option("--model", "-m", default=None, help="Model name (e.g. openai/gpt-4o-mini)"),
        click.option("--api-base", default=None, help="LLM API base URL"),
        click.option("--api-key", default=None, help="LLM API key"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _emit(data: Any, output: str | None) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        click.echo(f"✓ Written to {output}")
    else:
        click.echo(text)


def _finish(result: GenerationResult, config: Config, output: str | None, save: bool) -> None:
    if save:
        from charforge.store import CharacterStore

        path = CharacterStore(config.characters_dir).save(result.character)
        click.echo(f"✓ Saved {path}", err=True)
    _emit(result.character.to_json(), output)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Character generation for conversational agents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--prompt", "-p", required=True, help="Natural language description of the character")
@_llm_options
@click.option("--output", "-o", default=None, help="Write the character JSON to this file")
@click.option("--save", is_flag=True, help="Also save into the characters directory")
def generate(
    prompt: str,
    provider: str | None,
    model: str | None,
    api_base: str | None,
    api_key: str | None,
    output: str | None,
    save: bool,
) -> None:
    """Generate a new character from a description."""
    from charforge.synthesizer import generate_character

    config = _apply_llm_overrides(Config.from_env(), provider, model, api_base, api_key)
    click.echo(f"Generating with {config.llm.model}...", err=True)
    try:
        result = asyncio.run(generate_character(prompt, llm=config.llm))
    except CharforgeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _finish(result, config, output, save)


@main.command()
@click.argument("character_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--prompt", "-p", required=True, help="Refinement instructions")
@_llm_options
@click.option("--output", "-o", default=None, help="Write the refined JSON to this file")
@click.option("--save", is_flag=True, help="Also save into the characters directory")
def refine(
    character_file: str,
    prompt: str,
    provider: str | None,
    model: str | None,
    api_base: str | None,
    api_key: str | None,
    output: str | None,
    save: bool,
) -> None:
    """Refine an existing character file."""
    from charforge.store import CharacterStore
    from charforge.synthesizer import refine_character

    config = _apply_llm_overrides(Config.from_env(), provider, model, api_base, api_key)
    current = CharacterStore.read(Path(character_file))
    click.echo(f"Refining {current.name or character_file} with {config.llm.model}...", err=True)
    try:
        result = asyncio.run(refine_character(prompt, current, llm=config.llm))
    except CharforgeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _finish(result, config, output, save)


@main.command("fix-json")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
def fix_json(source) -> None:
    """Recover a JSON object from model output (file or stdin)."""
    from charforge.extractor import ExtractionError, extract

    try:
        data = extract(source.read())
    except ExtractionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _emit(data, None)


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def knowledge(files: tuple[str, ...]) -> None:
    """Print knowledge sentences extracted from documents."""
    from charforge.knowledge import extract_knowledge

    sentences: list[str] = []
    for name in files:
        path = Path(name)
        sentences.extend(extract_knowledge(path.name, path.read_bytes()))
    _emit(sentences, None)


@main.command()
@click.option("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Port (default: $PORT or 4001)")
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    import uvicorn

    from charforge.server import create_app

    logging.getLogger().setLevel(logging.INFO)
    config = Config.from_env()
    if host:
        config = replace(config, host=host)
    if port:
        config = replace(config, port=port)
    click.echo(f"Server running on http://{config.host}:{config.port}")
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
