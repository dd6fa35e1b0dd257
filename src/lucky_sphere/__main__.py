from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
import sys
import time


def _setup_sdl_env_for_console() -> None:
    """
    Outside a desktop session prefer software rendering so SDL does not go
    looking for EGL/GL.

    IMPORTANT: env vars must be set before the first SDL video init.
    """

    under_desktop = bool(os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))
    if under_desktop:
        return
    os.environ.setdefault("SDL_RENDER_DRIVER", "software")


_setup_sdl_env_for_console()

import pygame

from . import config
from .audio import AudioManager
try:
    from .controllers import ButtonManager
except Exception as e:  # pragma: no cover - optional hardware dependency
    ButtonManager = None  # type: ignore[assignment,misc]
    _BUTTON_IMPORT_ERROR_MESSAGE = f"{type(e).__name__}: {e}"
else:
    _BUTTON_IMPORT_ERROR_MESSAGE = ""
from .draw import DrawController
from .input import HostAction, InputManager
from .names import NamePool, parse_names
from .speech import AnnouncementSynthesizer, FallbackAnnouncer
from .ui import UI

_log = logging.getLogger(__name__)

_STATE_COMMANDS = {
    "RUNNING": "DRAWING",
    "REVEALING": "REVEAL",
    "IDLE": "IDLE",
}


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )


def _create_screen() -> pygame.Surface:
    """
    Create the main display surface, progressively degrading flags/sizing
    when the platform refuses a mode (e.g. `EGL not initialized` on Wayland).
    """
    attempts: list[tuple[tuple[int, int], int]] = [
        (config.WINDOW_SIZE, pygame.FULLSCREEN | pygame.SCALED),
        (config.WINDOW_SIZE, pygame.FULLSCREEN),
        (config.WINDOW_SIZE, pygame.SCALED),
        (config.WINDOW_SIZE, 0),
    ]
    last_error: pygame.error | None = None
    for size, flags in attempts:
        try:
            return pygame.display.set_mode(size, flags)
        except pygame.error as e:
            last_error = e
    assert last_error is not None
    raise last_error


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="lucky-sphere")
    parser.add_argument(
        "--name",
        action="append",
        default=[],
        help="Repeatable. Example: --name Alice --name Bob",
    )
    parser.add_argument(
        "--names",
        default="",
        help='Comma-separated. Example: --names "Alice,Bob,Carol"',
    )
    parser.add_argument(
        "--names-file",
        type=Path,
        default=None,
        help=f"One name per line (default: {config.NAMES_FILE.name} if present)",
    )
    parser.add_argument("--winners", type=int, default=config.DEFAULT_WINNER_COUNT, help="Winners per draw")
    parser.add_argument("--mute", action="store_true", help="Start with sound disabled")
    parser.add_argument(
        "--api-key",
        default=None,
        help=f"Gemini API key for spoken announcements (default: ${config.API_KEY_ENV})",
    )
    parser.add_argument(
        "--api-key-file",
        type=Path,
        default=None,
        help="File holding the Gemini API key; re-read with the reload key",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)
    if args.winners < 1:
        parser.error("--winners must be a positive integer")
    try:
        args.pool = _load_pool(args)
    except OSError as e:
        parser.error(f"cannot read names file: {e}")
    return args


def _load_pool(args: argparse.Namespace) -> NamePool:
    given = list(args.name)
    if args.names:
        given.append(args.names)
    names = parse_names(given)

    names_file = args.names_file
    if names_file is None and config.NAMES_FILE.exists():
        names_file = config.NAMES_FILE
    if names_file is not None:
        names = parse_names(names + NamePool.from_file(names_file).names)

    return NamePool(names) if names else NamePool()


def _resolve_api_key(args: argparse.Namespace) -> str | None:
    if args.api_key:
        return args.api_key
    if args.api_key_file is not None:
        try:
            key = args.api_key_file.read_text(encoding="utf-8").strip()
        except OSError:
            _log.warning("cannot read API key file %s", args.api_key_file)
        else:
            if key:
                return key
    return os.environ.get(config.API_KEY_ENV) or None


def _reload(args: argparse.Namespace, draw: DrawController) -> bool:
    """Re-read names and the API key between draws; the pool is kept if the file is unreadable."""
    if draw.state == "RUNNING":
        return False
    try:
        pool = _load_pool(args)
    except OSError:
        _log.warning("cannot reload names file", exc_info=config.LOGGING_DEBUG)
    else:
        draw.set_names(pool.names)
    draw.set_api_key(_resolve_api_key(args))
    _log.info("reloaded: %d names, speech key %s", len(draw.pool), "set" if draw.synthesizer.available else "missing")
    return True


def _dispatch(action: HostAction, draw: DrawController, now: float, args: argparse.Namespace | None = None) -> bool:
    """Apply a host action; returns False when the app should quit."""
    if action.action == "quit":
        return False
    if action.action == "start":
        if draw.revealed_winners:
            draw.dismiss()
        draw.start_draw(now)
    elif action.action == "dismiss":
        draw.dismiss()
    elif action.action == "toggle_sound":
        draw.toggle_sound()
    elif action.action == "more_winners":
        draw.set_winner_count(min(max(1, len(draw.pool)), draw.winner_count + 1))
    elif action.action == "fewer_winners":
        if draw.winner_count > 1:
            draw.set_winner_count(draw.winner_count - 1)
    elif action.action == "reload" and args is not None:
        _reload(args, draw)
    return True


def main() -> None:
    args = _parse_args(sys.argv[1:])
    _setup_logging(args.debug or config.LOGGING_DEBUG)
    if _BUTTON_IMPORT_ERROR_MESSAGE:
        _log.debug("start button support unavailable: %s", _BUTTON_IMPORT_ERROR_MESSAGE)

    screen = _create_screen()
    pygame.init()
    pygame.display.set_caption("Lucky Sphere")
    clock = pygame.time.Clock()

    ui = UI(screen)
    draw = DrawController(
        audio=AudioManager(),
        announcer=FallbackAnnouncer(),
        synthesizer=AnnouncementSynthesizer(_resolve_api_key(args)),
        pool=args.pool,
        winner_count=args.winners,
        sound_enabled=not args.mute,
        celebrate=ui.celebrate,
    )
    input_manager = InputManager()
    button_manager = None
    if config.CONTROLLERS_ENABLED and ButtonManager is not None:
        try:
            button_manager = ButtonManager()
        except Exception:
            _log.exception("failed to initialize ButtonManager")
            button_manager = None

    running = True
    previous_state = draw.state
    try:
        while running:
            now = time.perf_counter()
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        running = False
                        continue
                    action = input_manager.handle_key(event.key)
                    if action is not None:
                        running = _dispatch(action, draw, now, args) and running

            if button_manager is not None:
                for action in button_manager.drain_actions():
                    running = _dispatch(action, draw, now, args) and running

            draw.update(now)
            if button_manager is not None and draw.state != previous_state:
                button_manager.send_all(_STATE_COMMANDS[draw.state])
            previous_state = draw.state
            ui.draw(draw, now)
            clock.tick(config.FPS)
    finally:
        draw.shutdown()
        draw.audio.close()
        if button_manager is not None:
            button_manager.close()
        pygame.quit()


if __name__ == "__main__":
    main()
