#!/usr/bin/env python3
"""
Anywhere - Command Line Interface

Commands:
    tools    - Print the tool catalogue sent to the agent
    context  - Print the viewport context message for a position
    chat     - Text conversation with the live agent over a simulated street

Usage:
    python -m anywhere.cli tools
    python -m anywhere.cli context 48.8584 2.2945 --heading 180 --address "Eiffel Tower"
    python -m anywhere.cli chat

For help on a specific command:
    python -m anywhere.cli <command> --help
"""

import argparse
import asyncio
import json
import sys

from anywhere.config import settings
from anywhere.logger import get_logger, init_logging

# Initialize logging
init_logging()
logger = get_logger(__name__)


def cmd_tools(args: argparse.Namespace) -> int:
    """
    Print the function declarations as JSON.
    """
    from anywhere.navigation.registry import tool_registry

    print(json.dumps(tool_registry.function_declarations(), indent=2, ensure_ascii=False))
    return 0


def cmd_context(args: argparse.Namespace) -> int:
    """
    Print the [SYSTEM_UPDATE] message for a viewport.
    """
    from anywhere.core.prompts import format_context_update

    print(format_context_update(args.lat, args.lng, args.heading, args.pitch, args.address))
    return 0


async def _chat_loop(greet: bool) -> int:
    from anywhere.audio import NullAudioSink
    from anywhere.config import ExplorerConfig
    from anywhere.navigation.simulated import SimulatedAtlas, SimulatedViewer, demo_world
    from anywhere.realtime import ExplorerController, ToolCallEvent, TurnCompleteEvent

    nodes = demo_world()
    viewer = SimulatedViewer(nodes, start_pano="paris-0", heading=180.0, maps_api_key=settings.maps.api_key)
    atlas = SimulatedAtlas(nodes)
    sink = NullAudioSink()

    config = ExplorerConfig(
        context_update_interval_s=settings.explorer.context_update_interval_s,
        greeting_delay_s=settings.explorer.greeting_delay_s,
        auto_greet=greet,
    )
    controller = ExplorerController(viewer, geocoder=atlas, locator=atlas, audio_sink=sink, config=config)
    viewer.add_position_listener(controller.handle_position_change)

    async def on_turn_complete(event: TurnCompleteEvent) -> None:
        reply = controller.state.latest_ai_response or "(audio only)"
        print(f"\nGuide: {reply}  [{sink.seconds_received:.1f}s audio]\nYou: ", end="", flush=True)

    async def on_tool_call(event: ToolCallEvent) -> None:
        print(f"\n  ⚙ {event.name} {event.args} -> {event.response.get('message', event.response)}")

    controller.events.subscribe(TurnCompleteEvent, on_turn_complete)
    controller.events.subscribe(ToolCallEvent, on_tool_call)

    if not await controller.connect():
        print(f"❌ Connection failed: {controller.state.error}")
        return 1

    return await run_chat(controller)


async def run_chat(controller) -> int:
    """Read lines from stdin and send them to a connected controller."""
    from anywhere.errors import NotConnectedError

    print("✅ Connected. Commands: /where, /history, /quit")
    try:
        while controller.is_connected:
            line = (await asyncio.to_thread(input, "You: ")).strip()
            if not line:
                continue
            if line.lower() == "/quit":
                break
            if line.lower() == "/where":
                print(json.dumps(controller.current_context().to_dict(), indent=2, ensure_ascii=False))
                continue
            if line.lower() == "/history":
                for checkpoint in controller.state.tour_history:
                    print(f"  📍 {checkpoint.address}: {(checkpoint.ai_narration or '')[:80]}")
                continue
            await controller.send_text(line)
    except NotConnectedError:
        print("\n🔌 The guide disconnected.")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await controller.close()

    print("\n👋 Goodbye!")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive text conversation with the tour guide.
    """
    print("\n" + "=" * 60)
    print("🌍 Anywhere - Interactive Tour (simulated street view)")
    print("=" * 60)

    if not settings.gemini.is_configured:
        print("❌ Gemini not configured.")
        print("   Set GEMINI_API_KEY in .env")
        return 1

    try:
        return asyncio.run(_chat_loop(greet=not args.no_greet))
    except KeyboardInterrupt:
        print("\n\n👋 Tour interrupted.")
        return 0
    except Exception as e:
        print(f"❌ Chat failed: {e}")
        logger.exception("Chat error")
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="anywhere",
        description="Voice-guided street-level explorer CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Inspect the agent setup:
    python -m anywhere.cli tools
    python -m anywhere.cli context 48.8584 2.2945 --heading 180

  Talk to the guide:
    python -m anywhere.cli chat
    python -m anywhere.cli chat --no-greet
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Tools command
    tools_parser = subparsers.add_parser(
        "tools",
        help="Print the tool catalogue as JSON"
    )
    tools_parser.set_defaults(func=cmd_tools)

    # Context command
    context_parser = subparsers.add_parser(
        "context",
        help="Print the viewport context message"
    )
    context_parser.add_argument("lat", type=float, help="Latitude in degrees")
    context_parser.add_argument("lng", type=float, help="Longitude in degrees")
    context_parser.add_argument(
        "--heading",
        type=float,
        default=0.0,
        help="Heading in degrees (default: 0)"
    )
    context_parser.add_argument(
        "--pitch",
        type=float,
        default=0.0,
        help="Pitch in degrees (default: 0)"
    )
    context_parser.add_argument(
        "--address", "-a",
        type=str,
        default=None,
        help="Address line (default: Unknown)"
    )
    context_parser.set_defaults(func=cmd_context)

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Start an interactive tour"
    )
    chat_parser.add_argument(
        "--no-greet",
        action="store_true",
        help="Skip the automatic greeting"
    )
    chat_parser.set_defaults(func=cmd_chat)

    return parser


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        import logging
        logging.getLogger().setLevel(logging.DEBUG)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
