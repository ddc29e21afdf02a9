#!/usr/bin/env python3
"""
White Ninja AI CLI - Main Entry Point

Usage:
    whiteninja build "a landing page for a coffee roastery"
    whiteninja build "..." --site-type portfolio --dark-mode --output ./site
    whiteninja suggest "a landing page for a coffee roastery"
    whiteninja health
    whiteninja serve
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from rich.console import Console
from rich.panel import Panel

from cli.config import CLIConfig
from cli.reconnection import ChannelError, ConnectionState, ResilientChannel
from cli.renderer import BuildRenderer


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="whiteninja",
        description="White Ninja AI - watch a five-agent team build a website",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  whiteninja build "portfolio for a wedding photographer" --site-type portfolio
  whiteninja build "SaaS landing page" --primary-color "#10b981" --dark-mode
  whiteninja suggest "online store for handmade ceramics"
  whiteninja health
        """
    )
    parser.add_argument("--server", help="WebSocket URL (default: ws://localhost:3001/ws)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version="%(prog)s 0.2.0")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    build_parser = subparsers.add_parser("build", help="Run a build and stream its progress")
    build_parser.add_argument("brief", help="What the website should be")
    build_parser.add_argument("--site-type", choices=["landing", "portfolio", "blog", "ecommerce", "dashboard", "custom"])
    build_parser.add_argument("--style-preset", choices=["modern-dark", "clean-minimal", "bold-colorful", "corporate", "retro"])
    build_parser.add_argument("--code-quality", choices=["speed", "balanced", "perfectionist"])
    build_parser.add_argument("--primary-color", help="Hex color, e.g. #3b82f6")
    build_parser.add_argument("--font", dest="font_preference", help="Font preference")
    build_parser.add_argument("--dark-mode", action="store_true", default=None, help="Dark site theme")
    build_parser.add_argument("--no-animations", dest="animations", action="store_false", default=None)
    build_parser.add_argument("--no-responsive", dest="responsive", action="store_false", default=None)
    build_parser.add_argument("--feedback", action="append", default=[], help="Feedback to send once the build starts (repeatable)")
    build_parser.add_argument("-o", "--output", help="Directory to write the finished files to")
    build_parser.add_argument("--hide-thinking", action="store_true", help="Hide agent thoughts")

    suggest_parser = subparsers.add_parser("suggest", help="Ask the server to suggest build options")
    suggest_parser.add_argument("brief")

    subparsers.add_parser("health", help="Show server health")
    subparsers.add_parser("serve", help="Run the build server")

    return parser


def options_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """camelCase option bag with unset options left out"""
    mapping = {
        "siteType": args.site_type,
        "stylePreset": args.style_preset,
        "codeQuality": args.code_quality,
        "primaryColor": args.primary_color,
        "fontPreference": args.font_preference,
        "darkMode": args.dark_mode,
        "animations": args.animations,
        "responsive": args.responsive,
    }
    return {key: value for key, value in mapping.items() if value is not None}


def write_files(output_dir: str, files: List[Dict[str, Any]]) -> List[Path]:
    """Write build files below output_dir; paths escaping it are skipped"""
    root = Path(output_dir).resolve()
    written = []
    for entry in files:
        target = (root / entry.get("path", "")).resolve()
        if root not in target.parents:
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(entry.get("content") or "", encoding="utf-8")
        written.append(target)
    return written


async def run_build(
    config: CLIConfig,
    console: Console,
    brief: str,
    options: Dict[str, Any],
    feedback: Optional[List[str]] = None,
    channel: Optional[ResilientChannel] = None,
) -> Dict[str, Any]:
    """
    Stream one build to the console.

    Returns:
        The build_complete or build_error message (a synthetic build_error
        when the connection is lost for good)
    """
    channel = channel or ResilientChannel(config, console)
    renderer = BuildRenderer(console, config)
    done = asyncio.Event()
    outcome: Dict[str, Any] = {}
    connected_once = False

    def finish(message: Dict[str, Any]) -> None:
        if not done.is_set():
            outcome.update(message)
            done.set()

    def lost(message: str) -> None:
        if not done.is_set():
            error = {"type": "build_error", "message": message}
            renderer.render_event(error)
            finish(error)

    def on_state(state: ConnectionState, error: Optional[ChannelError]) -> None:
        nonlocal connected_once
        if state == ConnectionState.FAILED:
            lost(error.message if error else "Connection failed")
        elif state == ConnectionState.CONNECTED:
            if connected_once:
                # The server cancels a build whose observer disconnects
                lost("Connection dropped; the server cancelled the build")
            connected_once = True

    channel.on("build_complete", finish)
    channel.on("build_error", finish)
    channel.on("*", renderer.render_event)
    channel.on_state_change(on_state)

    await channel.start_build(brief, options)
    for note in feedback or []:
        await channel.send_feedback(note)

    runner = asyncio.create_task(channel.run())
    try:
        await done.wait()
    finally:
        await channel.disconnect()
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass
    return outcome


async def fetch_suggestions(config: CLIConfig, brief: str) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=config.request_timeout) as client:
        response = await client.post(f"{config.api_base_url}/suggest-config", json={"brief": brief})
        response.raise_for_status()
        return response.json()


async def fetch_health(config: CLIConfig) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(f"{config.api_base_url}/health")
        response.raise_for_status()
        return response.json()


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    console = Console()
    config = CLIConfig.load_default()
    if args.server:
        config.server_url = args.server
    if args.verbose:
        config.verbose = True

    if args.command == "serve":
        from whiteninja.main import run
        run()
        return

    if args.command == "health":
        try:
            health = asyncio.run(fetch_health(config))
        except httpx.HTTPError as e:
            console.print(f"[red]✗ Server unreachable: {e}[/red]")
            sys.exit(1)
        console.print(Panel(
            f"Status: [green]{health.get('status')}[/green]  Version: {health.get('version')}\n"
            f"Uptime: {health.get('uptime', {}).get('human')}\n"
            f"API key configured: {health.get('apiKeyConfigured')}\n"
            f"Sessions: {health.get('activeSessions')}/{health.get('maxConcurrentBuilds')}",
            title="White Ninja server",
            border_style="cyan",
        ))
        return

    if args.command == "suggest":
        try:
            suggestions = asyncio.run(fetch_suggestions(config, args.brief))
        except httpx.HTTPStatusError as e:
            console.print(f"[red]✗ {e.response.status_code}: {e.response.text}[/red]")
            sys.exit(1)
        except httpx.HTTPError as e:
            console.print(f"[red]✗ Server unreachable: {e}[/red]")
            sys.exit(1)
        console.print_json(json.dumps(suggestions))
        return

    if args.command == "build":
        config.show_thinking = not args.hide_thinking
        if args.output:
            config.output_dir = args.output
        try:
            outcome = asyncio.run(run_build(config, console, args.brief, options_from_args(args), args.feedback))
        except KeyboardInterrupt:
            console.print("\n[yellow]Build cancelled.[/yellow]")
            sys.exit(130)

        if outcome.get("type") != "build_complete":
            sys.exit(1)
        written = write_files(config.output_dir, outcome.get("files") or [])
        console.print(f"[green]✓ Wrote {len(written)} file(s) to {config.output_dir}[/green]")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
