#!/usr/bin/env python
"""
Caption a single local image with a Qwen-VL model through DashScope's
OpenAI-compatible chat-completions endpoint.

Behavior:
  - Read the image given by -file (.jpg, .jpeg or .png).
  - If it is larger than the byte budget (4 MiB by default), re-encode it at
    decreasing quality until it fits.
  - Send it as a base64 data URI together with the prompt.
  - Print the caption and the token usage.

Notes:
  - Requires YUMO_IMG_CAPTION_QWEN_API_KEY in environment.
  - Flags keep their single-dash spelling (-file, -model, ...); the usual
    double-dash form is accepted too.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from caption_api import CaptionResult, build_request, request_caption
from caption_config import (
    API_MODEL,
    API_URL,
    BASE64_OUTPUT,
    DEFAULT_TIMEOUT,
    CaptionConfig,
)
from caption_errors import CaptionError, ConfigError, ImageIOError
from caption_prompt import DEFAULT_CONTENT_COUNT, DEFAULT_TITLE_COUNT
from data_uri import encode_image_file
from image_fit import DEFAULT_BUDGET


console = Console()
log = logging.getLogger("caption_image")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@contextmanager
def framed():
    """Print a horizontal rule before and after the enclosed output."""
    console.rule(style="dim")
    try:
        yield
    finally:
        console.rule(style="dim")


def write_text(path: str, content: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content or "")
    except OSError as e:
        raise ImageIOError(f"Failed to write {path}: {e}") from e


def print_info(config: CaptionConfig) -> None:
    with framed():
        console.print(f"[blue]API URL:[/blue] {escape(config.url)}")
        console.print(f"[blue]API key:[/blue] {escape(config.masked_key)}")
        console.print(f"[blue]Model:[/blue] {escape(config.model)}")
        console.print(f"[blue]Image file:[/blue] {escape(config.file)}")
        console.print(f"[blue]Image file (absolute):[/blue] {escape(config.abs_file)}")
        console.print(f"[blue]Prompt:[/blue]\n{escape(config.resolved_prompt)}", soft_wrap=True)
        console.print(f"[blue]Description length:[/blue] {config.content_count}")
        console.print(f"[blue]Title length:[/blue] {config.title_count}")
        console.print(f"[blue]Size budget:[/blue] {config.max_bytes} bytes")
        console.print(f"[blue]Timeout:[/blue] {config.timeout:g}s")


def print_result(result: CaptionResult) -> None:
    with framed():
        console.print("[green]Caption generated[/green]")
        console.print()
        console.print(result.text, markup=False, highlight=False, soft_wrap=True)
        console.print()
        console.print(f"Prompt tokens:\t{result.prompt_tokens}\ttokens")
        console.print(f"Completion tokens:\t{result.completion_tokens}\ttokens")
        console.print(f"Total tokens:\t{result.total_tokens}\ttokens")
        if result.cached_tokens:
            console.print(f"[dim]Cached prompt tokens:\t{result.cached_tokens}\ttokens[/dim]")


def run(config: CaptionConfig) -> CaptionResult:
    """Encode the configured image, ask the model, return the caption."""
    if config.show_info:
        print_info(config)

    if not config.file:
        raise ConfigError("No image file given; pass the image path with -file.")

    with framed():
        console.print(f"[cyan]Reading image file:[/cyan] {escape(config.file)}")
        console.print(f"[cyan]Using model:[/cyan] {escape(config.model)}")

    data_uri = encode_image_file(config.abs_file, config.max_bytes)
    log.debug("data URI length %d", len(data_uri))

    if config.save_base64:
        write_text(BASE64_OUTPUT, data_uri)
        with framed():
            console.print(f"Image base64 data URI saved to {BASE64_OUTPUT}")

    request = build_request(config.model, config.resolved_prompt, data_uri)
    return request_caption(config, request)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-url", "--url", default=API_URL, show_default=True, help="Chat-completions endpoint URL")
@click.option("-file", "--file", "file", default="", help="Path of the image to caption (.jpg, .jpeg, .png)")
@click.option("-model", "--model", default=API_MODEL, show_default=True, help="Vision model name")
@click.option("-info", "--info", "show_info", is_flag=True, help="Print the resolved configuration first")
@click.option("-base64", "--base64", "save_base64", is_flag=True,
              help=f"Save the image data URI to ./{BASE64_OUTPUT}")
@click.option("-content_count", "--content-count", "content_count", type=click.IntRange(min=1),
              default=DEFAULT_CONTENT_COUNT, show_default=True, help="Suggested description length")
@click.option("-title_count", "--title-count", "title_count", type=click.IntRange(min=1),
              default=DEFAULT_TITLE_COUNT, show_default=True, help="Suggested title length")
@click.option("-prompt", "--prompt", default="", help="Prompt override (default: generated from the counts)")
@click.option("-max_bytes", "--max-bytes", "max_bytes", type=click.IntRange(min=1),
              default=DEFAULT_BUDGET, show_default=True, help="Largest image payload in bytes")
@click.option("-timeout", "--timeout", type=click.FloatRange(min=0, min_open=True),
              default=DEFAULT_TIMEOUT, show_default=True, help="Request timeout in seconds")
@click.option("-verbose", "--verbose", is_flag=True, help="Debug logging")
def main(url: str, file: str, model: str, show_info: bool, save_base64: bool, content_count: int,
         title_count: int, prompt: str, max_bytes: int, timeout: float, verbose: bool):
    """Caption an image with a Qwen-VL model and print the token usage."""
    setup_logging(verbose)
    try:
        config = CaptionConfig.from_env(
            file=file,
            url=url or API_URL,
            model=model or API_MODEL,
            prompt=prompt,
            title_count=title_count,
            content_count=content_count,
            max_bytes=max_bytes,
            timeout=timeout,
            show_info=show_info,
            save_base64=save_base64,
        )
        result = run(config)
    except CaptionError as e:
        with framed():
            console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(1)
    print_result(result)


if __name__ == "__main__":
    main()
