"""Supa Artistry CLI — sign in, browse as a guest, try the AI demos.

Usage:
    supa-artistry status                          # Who am I? (user, guest, or nobody)
    supa-artistry guest                           # Continue as guest
    supa-artistry signup me@example.com           # Email sign-up (prompts for password)
    supa-artistry signin me@example.com           # Email sign-in
    supa-artistry phone send "+1 415 555 2671"    # Text me a code
    supa-artistry phone verify "+1 415 555 2671" 123456
    supa-artistry signout                         # Sign out + forget guest
    supa-artistry watch                           # Follow session changes live
    supa-artistry demo text "a haiku about paint" # Simulated AI demos
    supa-artistry demo image ./photo.jpg
    supa-artistry demo multimodal "what is this?" ./photo.png
    supa-artistry demo video "a cat surfing"

Each invocation is one client: the session and guest token live in the
JSON file at SUPA_ARTISTRY_STORAGE_PATH, so they carry over between runs.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import click
import structlog

from supa_artistry import __version__
from supa_artistry.auth.provider import AuthProviderError, ProviderUnavailable
from supa_artistry.auth.refresher import TokenRefreshWorker
from supa_artistry.auth.supabase import SupabaseAuthProvider
from supa_artistry.config import settings
from supa_artistry.schemas.genai import DemoResult, Notice
from supa_artistry.services.auth_service import AuthService
from supa_artistry.services.genai_service import DemoInputError, GenAIDemoService
from supa_artistry.session.models import Authenticated, Guest, ResolvedSession
from supa_artistry.session.resolver import SessionResolver
from supa_artistry.session.storage import JsonFileStorage, KeyValueStorage

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class App:
    provider: SupabaseAuthProvider
    resolver: SessionResolver
    auth: AuthService


def _build_storage() -> KeyValueStorage:
    return JsonFileStorage(settings.storage_path)


def _build_provider(storage: KeyValueStorage) -> SupabaseAuthProvider:
    return SupabaseAuthProvider(storage=storage)


@asynccontextmanager
async def _app():
    """Build the provider + resolver, resolve the session, tear down after."""
    storage = _build_storage()
    provider = _build_provider(storage)
    resolver = SessionResolver(provider, storage)
    try:
        await resolver.initialize()
        yield App(provider=provider, resolver=resolver, auth=AuthService(provider, resolver))
    finally:
        await resolver.close()
        await provider.close()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    # Look up sys.stderr per logger so redirected streams are honoured.
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=lambda *args: structlog.PrintLogger(sys.stderr),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    The coroutine returns an exit code (None means 0). Known failures
    (auth service down, bad demo input) are printed in red and exit
    with status 1.
    """
    try:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No running loop — normal CLI invocation
            code = asyncio.run(coro)
        else:
            # Already inside an event loop (e.g. test runner) — run in a thread
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                code = pool.submit(asyncio.run, coro).result()
    except DemoInputError as e:
        _print_notice(e.notice)
        sys.exit(1)
    except AuthProviderError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    if code:
        sys.exit(code)


def _print_notice(notice: Notice) -> None:
    color = "green" if notice.ok else "red"
    click.secho(notice.title, fg=color, bold=True, err=not notice.ok)
    if notice.description:
        click.echo(f"  {notice.description}", err=not notice.ok)


def _print_state(state: Optional[ResolvedSession]) -> None:
    if state is None:
        click.secho("Loading...", fg="white")
    elif isinstance(state, Authenticated):
        who = state.identity.contact or state.identity.id
        click.secho(f"Signed in as {who}", fg="green", bold=True)
        click.echo(f"  Session ID: {state.identity.id}")
    elif isinstance(state, Guest):
        click.secho("Guest User", fg="yellow", bold=True)
        click.echo(f"  Session ID: {state.token}")
    else:
        click.secho("No active session", bold=True)
        click.echo("  Run `supa-artistry signin` or `supa-artistry guest` to get started.")


def _print_result(result: DemoResult) -> None:
    _print_notice(result.notice)
    click.echo(f"  Session ID: {result.session_id}")
    if result.vertexai:
        click.echo("  Backend:    Vertex AI (simulated)")
    if result.content:
        click.echo()
        click.echo(result.content)


def _finish(notice: Notice) -> int:
    _print_notice(notice)
    return 0 if notice.ok else 1


async def _already_signed_in(app: App) -> bool:
    if await app.auth.is_signed_in():
        click.secho("Already signed in.", fg="yellow")
        _print_state(app.resolver.current)
        return True
    return False


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="supa-artistry")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr")
def main(verbose: bool):
    """Supa Artistry — your AI-powered creative companion."""
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@main.command()
def status():
    """Show who is using the app: a signed-in user, a guest, or nobody."""
    _run(_status_impl())


async def _status_impl():
    async with _app() as app:
        _print_state(app.resolver.current)


@main.command()
def guest():
    """Continue as a guest (no account needed)."""
    _run(_guest_impl())


async def _guest_impl():
    async with _app() as app:
        notice = app.auth.continue_as_guest()
        if _finish(notice):
            return 1
        click.echo(f"  Session ID: {app.resolver.get_active_identifier()}")


@main.command()
def signout():
    """Sign out and forget the guest session."""
    _run(_signout_impl())


async def _signout_impl():
    async with _app() as app:
        try:
            await app.resolver.sign_out()
        except ProviderUnavailable as e:
            click.secho(
                f"Signed out locally, but the auth service could not be reached: {e}",
                fg="yellow",
            )
            return
        click.secho("Signed out.", fg="green")


@main.command()
@click.option("--poll-interval", type=float, default=None, help="Seconds between refresh checks")
def watch(poll_interval: Optional[float]):
    """Follow session changes live and keep the access token fresh."""
    try:
        _run(_watch_impl(poll_interval))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


async def _watch_impl(poll_interval: Optional[float]):
    async with _app() as app:
        _print_state(app.resolver.current)
        unsubscribe = app.resolver.subscribe(_print_state)
        worker = TokenRefreshWorker(app.provider, poll_interval=poll_interval)
        try:
            await worker.run_loop()
        finally:
            worker.stop()
            unsubscribe()


# ---------------------------------------------------------------------------
# Email auth
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def signup(email: str, password: str):
    """Create an account with EMAIL. A confirmation link is emailed."""
    _run(_signup_impl(email, password))


async def _signup_impl(email: str, password: str):
    async with _app() as app:
        if await _already_signed_in(app):
            return
        return _finish(await app.auth.sign_up_email(email, password))


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def signin(email: str, password: str):
    """Sign in with EMAIL and password."""
    _run(_signin_impl(email, password))


async def _signin_impl(email: str, password: str):
    async with _app() as app:
        if await _already_signed_in(app):
            return
        return _finish(await app.auth.sign_in_email(email, password))


# ---------------------------------------------------------------------------
# Phone auth
# ---------------------------------------------------------------------------


@main.group()
def phone():
    """Sign in with a phone number and an SMS code."""


@phone.command("send")
@click.argument("number")
def phone_send(number: str):
    """Text a verification code to NUMBER."""
    _run(_phone_send_impl(number))


async def _phone_send_impl(number: str):
    async with _app() as app:
        if await _already_signed_in(app):
            return
        return _finish(await app.auth.send_phone_code(number))


@phone.command("verify")
@click.argument("number")
@click.argument("code")
def phone_verify(number: str, code: str):
    """Check the 6-digit CODE sent to NUMBER and sign in."""
    _run(_phone_verify_impl(number, code))


async def _phone_verify_impl(number: str, code: str):
    async with _app() as app:
        return _finish(await app.auth.verify_phone_code(number, code))


# ---------------------------------------------------------------------------
# AI demos
# ---------------------------------------------------------------------------


def _demo_options(f):
    f = click.option("--api-key", envvar="SUPA_ARTISTRY_GOOGLE_API_KEY", default=None,
                     help="Google AI API key")(f)
    f = click.option("--vertexai", is_flag=True, help="Pretend to use Vertex AI")(f)
    return f


@main.group()
def demo():
    """Simulated generative-AI demos (no real model is called)."""


@demo.command("text")
@click.argument("prompt")
@_demo_options
def demo_text(prompt: str, api_key: Optional[str], vertexai: bool):
    """Generate text from PROMPT."""
    _run(_demo_impl("text", api_key, vertexai, prompt=prompt))


@demo.command("image")
@click.argument("path", type=click.Path())
@_demo_options
def demo_image(path: str, api_key: Optional[str], vertexai: bool):
    """Analyze the image at PATH."""
    _run(_demo_impl("image", api_key, vertexai, path=path))


@demo.command("multimodal")
@click.argument("prompt")
@click.argument("path", type=click.Path())
@_demo_options
def demo_multimodal(prompt: str, path: str, api_key: Optional[str], vertexai: bool):
    """Ask PROMPT about the image at PATH."""
    _run(_demo_impl("multimodal", api_key, vertexai, prompt=prompt, path=path))


@demo.command("video")
@click.argument("prompt")
@_demo_options
def demo_video(prompt: str, api_key: Optional[str], vertexai: bool):
    """Generate a video from PROMPT."""
    _run(_demo_impl("video", api_key, vertexai, prompt=prompt))


async def _demo_impl(
    feature: str,
    api_key: Optional[str],
    vertexai: bool,
    prompt: str = "",
    path: Optional[str] = None,
):
    async with _app() as app:
        service = GenAIDemoService(app.resolver, api_key=api_key, vertexai=vertexai)
        click.echo("Generating..." if feature != "image" else "Analyzing...")
        if feature == "text":
            result = await service.generate_text(prompt)
        elif feature == "image":
            result = await service.analyze_image(path)
        elif feature == "multimodal":
            result = await service.text_and_image(prompt, path)
        else:
            result = await service.generate_video(prompt)
        _print_result(result)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
