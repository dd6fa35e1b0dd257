"""Presentation layer: name sphere, draw countdown and winner panel."""
from __future__ import annotations

import math
import random
import pygame

from . import config
from .draw import DrawController
from .particles import ParticleSystem


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _lerp_color(a: tuple, b: tuple, t: float) -> tuple:
    t = max(0.0, min(1.0, t))
    return tuple(int(a[i] + (b[i] - a[i]) * t) for i in range(3))


def _ease_out_elastic(t: float) -> float:
    if t <= 0:
        return 0.0
    if t >= 1:
        return 1.0
    p = 0.4
    return pow(2, -10 * t) * math.sin((t - p / 4) * (2 * math.pi) / p) + 1


def _pulse(now: float, speed: float = 3.0, lo: float = 0.4, hi: float = 1.0) -> float:
    """Returns a value oscillating between lo and hi."""
    t = (math.sin(now * speed) + 1) / 2
    return lo + (hi - lo) * t


def _get_font(size: int) -> pygame.font.Font:
    for name in config.FONT_NAMES:
        try:
            f = pygame.font.SysFont(name, size)
            if f:
                return f
        except Exception:
            continue
    return pygame.font.Font(None, size)


def sphere_points(count: int) -> list[tuple[float, float, float]]:
    """Evenly spread unit vectors (Fibonacci lattice)."""
    if count <= 0:
        return []
    if count == 1:
        return [(0.0, 0.0, 1.0)]
    golden = math.pi * (3 - math.sqrt(5))
    points = []
    for i in range(count):
        y = 1 - (i / (count - 1)) * 2
        r = math.sqrt(max(0.0, 1 - y * y))
        theta = golden * i
        points.append((math.cos(theta) * r, y, math.sin(theta) * r))
    return points


def name_color(index: int, bucket: int, buckets: int) -> tuple:
    """Palette colour by pool position, dimmed toward the back of the sphere."""
    base = config.NAME_COLORS[index % len(config.NAME_COLORS)]
    return _lerp_color((40, 40, 60), base, 0.35 + 0.65 * (bucket + 1) / buckets)


# ---------------------------------------------------------------------------
# Background Stars
# ---------------------------------------------------------------------------

class _Star:
    __slots__ = ("x", "y", "base_size", "speed", "phase")
    def __init__(self) -> None:
        self.x = random.randint(0, config.WINDOW_SIZE[0])
        self.y = random.randint(0, config.WINDOW_SIZE[1])
        self.base_size = random.uniform(1.0, 3.0)
        self.speed = random.uniform(0.3, 1.2)
        self.phase = random.uniform(0, math.tau)


# ---------------------------------------------------------------------------
# Main UI Class
# ---------------------------------------------------------------------------

class UI:
    def __init__(self, screen: pygame.Surface) -> None:
        self.screen = screen
        self.W, self.H = config.WINDOW_SIZE

        self.font_tiny = _get_font(26)
        self.font_small = _get_font(36)
        self.font_med = _get_font(52)
        self.font_large = _get_font(84)
        self.font_title = _get_font(96)
        # Depth buckets for the sphere, far to near.
        self._name_fonts = [_get_font(s) for s in (22, 30, 40, 52)]
        self._name_cache: dict[tuple[str, int, tuple], pygame.Surface] = {}

        self._bg = self._make_gradient()
        self._stars = [_Star() for _ in range(config.BG_STAR_COUNT)]

        self.particles = ParticleSystem()
        self._last_time = 0.0
        self._angle = 0.0
        self._tilt = 0.35

        self._shake_amount = 0.0
        self._shake_decay = 8.0

        self._points: list[tuple[float, float, float]] = []
        self._point_names: tuple[str, ...] = ()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def celebrate(self, winner_count: int) -> None:
        self.particles.burst(self.W / 2, self.H / 2, self.particles.confetti_count(winner_count))
        self._shake_amount = 18.0

    # ------------------------------------------------------------------
    # Background
    # ------------------------------------------------------------------

    def _make_gradient(self) -> pygame.Surface:
        surf = pygame.Surface(config.WINDOW_SIZE)
        top = config.COLORS["bg_top"]
        bot = config.COLORS["bg_bottom"]
        for y in range(self.H):
            c = _lerp_color(top, bot, y / self.H)
            pygame.draw.line(surf, c, (0, y), (self.W, y))
        return surf

    def _draw_background(self, now: float) -> None:
        self.screen.blit(self._bg, (0, 0))
        for s in self._stars:
            brightness = _pulse(now + s.phase, s.speed, 0.2, 1.0)
            size = max(1, int(s.base_size * brightness))
            alpha = int(180 * brightness)
            ss = pygame.Surface((size * 2, size * 2), pygame.SRCALPHA)
            pygame.draw.circle(ss, (200, 210, 255, alpha), (size, size), size)
            self.screen.blit(ss, (s.x - size, s.y - size))

    # ------------------------------------------------------------------
    # Glow text
    # ------------------------------------------------------------------

    def _draw_glow_text(self, text: str, font: pygame.font.Font,
                        color: tuple, cx: int, cy: int, glow_layers: int = 3) -> None:
        for i in range(glow_layers, 0, -1):
            scale = 1.0 + i * 0.02
            glow_surf = font.render(text, True, color)
            gw = int(glow_surf.get_width() * scale)
            gh = int(glow_surf.get_height() * scale)
            glow_surf = pygame.transform.smoothscale(glow_surf, (gw, gh))
            glow_surf.set_alpha(max(10, 60 // i))
            self.screen.blit(glow_surf, glow_surf.get_rect(center=(cx, cy)))
        main_surf = font.render(text, True, color)
        self.screen.blit(main_surf, main_surf.get_rect(center=(cx, cy)))

    def _draw_timer_bar(self, fraction: float, y: int, color_a: tuple, color_b: tuple) -> None:
        bar_w = 1200
        bar_h = 12
        x = (self.W - bar_w) // 2
        bg = pygame.Surface((bar_w, bar_h), pygame.SRCALPHA)
        bg.fill((255, 255, 255, 20))
        self.screen.blit(bg, (x, y))

        fill_w = max(0, int(bar_w * fraction))
        if fill_w > 0:
            fill_color = _lerp_color(color_b, color_a, fraction)
            fill_s = pygame.Surface((fill_w, bar_h), pygame.SRCALPHA)
            fill_s.fill((*fill_color[:3], 200))
            self.screen.blit(fill_s, (x, y))

    # ------------------------------------------------------------------
    # Main draw
    # ------------------------------------------------------------------

    def draw(self, draw: DrawController, now: float) -> None:
        dt = now - self._last_time if self._last_time > 0 else 1 / config.FPS
        self._last_time = now

        self.particles.update(dt)
        self._angle += draw.speed * config.RING_SPIN_PER_SPEED * dt

        self._shake_amount *= max(0, 1 - self._shake_decay * dt)
        shake_x = random.uniform(-self._shake_amount, self._shake_amount)
        shake_y = random.uniform(-self._shake_amount, self._shake_amount)

        self._draw_background(now)
        self._draw_sphere(draw, shake_x, shake_y)

        if draw.state == "RUNNING":
            self._draw_countdown(draw, now)
        else:
            self._draw_title(now)
        self._draw_status(draw)

        if draw.revealed_winners:
            self._draw_winner_panel(draw, now)

        self.particles.draw(self.screen, shake_x, shake_y)
        pygame.display.flip()

    # ------------------------------------------------------------------
    # Name sphere
    # ------------------------------------------------------------------

    def _draw_sphere(self, draw: DrawController, off_x: float, off_y: float) -> None:
        names = draw.pool.snapshot()
        if names != self._point_names:
            self._point_names = names
            self._points = sphere_points(len(names))
            self._name_cache.clear()

        winners = set(draw.revealed_winners or ())
        radius = min(self.W, self.H) * 0.36
        cx = self.W / 2 + off_x
        cy = self.H / 2 + off_y
        cos_a, sin_a = math.cos(self._angle), math.sin(self._angle)
        cos_t, sin_t = math.cos(self._tilt), math.sin(self._tilt)

        projected = []
        for idx, (x, y, z) in enumerate(self._points):
            rx = x * cos_a + z * sin_a
            rz = -x * sin_a + z * cos_a
            ry = y * cos_t - rz * sin_t
            rz = y * sin_t + rz * cos_t
            projected.append((rz, rx, ry, idx))

        for depth, x, y, idx in sorted(projected):
            name = names[idx]
            bucket = min(len(self._name_fonts) - 1, int((depth + 1) / 2 * len(self._name_fonts)))
            if name in winners:
                color = config.COLORS["winner"]
            else:
                color = name_color(idx, bucket, len(self._name_fonts))
            surf = self._name_surface(name, bucket, color)
            self.screen.blit(surf, surf.get_rect(center=(int(cx + x * radius), int(cy - y * radius))))

    def _name_surface(self, name: str, bucket: int, color: tuple) -> pygame.Surface:
        key = (name, bucket, color)
        surf = self._name_cache.get(key)
        if surf is None:
            surf = self._name_fonts[bucket].render(name.replace("_", " "), True, color)
            self._name_cache[key] = surf
        return surf

    # ------------------------------------------------------------------
    # Overlays
    # ------------------------------------------------------------------

    def _draw_title(self, now: float) -> None:
        color = _lerp_color(config.COLORS["cyan"], config.COLORS["purple"], _pulse(now, 1.5, 0.0, 1.0))
        self._draw_glow_text(config.TITLE, self.font_title, color, self.W // 2, 90, glow_layers=3)
        sub = self.font_tiny.render("3D LOTTERY SYSTEM", True, config.COLORS["muted"])
        self.screen.blit(sub, sub.get_rect(center=(self.W // 2, 160)))

    def _draw_countdown(self, draw: DrawController, now: float) -> None:
        remaining = draw.remaining(now)
        self._draw_glow_text(f"{math.ceil(remaining)}s", self.font_large,
                             config.COLORS["drawing"], self.W // 2, self.H - 150, glow_layers=2)
        self._draw_timer_bar(remaining / config.DRAW_DURATION_SECONDS, self.H - 90,
                             config.COLORS["cyan"], config.COLORS["drawing"])

    def _draw_status(self, draw: DrawController) -> None:
        sound = "SOUND ON" if draw.sound_enabled else "MUTED"
        status = f"參與人數 {len(draw.pool)}  |  抽出 {draw.winner_count}  |  {sound}"
        surf = self.font_tiny.render(status, True, config.COLORS["text"])
        self.screen.blit(surf, surf.get_rect(topright=(self.W - 40, 30)))
        if draw.state == "IDLE" and not draw.revealed_winners:
            keys = "SPACE: START    UP/DOWN: WINNERS    R: RELOAD    M: SOUND    Q: QUIT"
            hint = self.font_small.render(keys, True, config.COLORS["muted"])
            self.screen.blit(hint, hint.get_rect(center=(self.W // 2, self.H - 80)))

    def _draw_winner_panel(self, draw: DrawController, now: float) -> None:
        winners = draw.revealed_winners or ()
        elapsed = now - draw.revealed_at
        scale = 1.0 + (1.0 - _ease_out_elastic(min(1.0, elapsed / 0.6))) * 0.5

        line_h = 70
        panel_w = 900
        panel_h = 200 + line_h * len(winners)
        panel_h = min(panel_h, self.H - 120)
        rect = pygame.Rect(0, 0, int(panel_w * scale), int(panel_h * scale))
        rect.center = (self.W // 2, self.H // 2)

        s = pygame.Surface(rect.size, pygame.SRCALPHA)
        s.fill((*config.COLORS["panel_bg"], 215))
        pygame.draw.rect(s, (*config.COLORS["panel_glow"], 230), s.get_rect(), width=3, border_radius=18)
        self.screen.blit(s, rect.topleft)

        self._draw_glow_text("恭喜得獎", self.font_med, config.COLORS["winner"],
                             rect.centerx, rect.top + 70, glow_layers=3)
        visible = max(1, (rect.height - 200) // line_h)
        for i, name in enumerate(winners[:visible]):
            surf = self.font_med.render(name.replace("_", " "), True, config.COLORS["text"])
            self.screen.blit(surf, surf.get_rect(center=(rect.centerx, rect.top + 150 + i * line_h)))
        if len(winners) > visible:
            more = self.font_small.render(f"+{len(winners) - visible}", True, config.COLORS["muted"])
            self.screen.blit(more, more.get_rect(center=(rect.centerx, rect.bottom - 60)))

        hint = self.font_tiny.render("BACKSPACE: CLOSE", True, config.COLORS["muted"])
        self.screen.blit(hint, hint.get_rect(center=(rect.centerx, rect.bottom - 25)))
