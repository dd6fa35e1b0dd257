"""Reveal confetti, tuned to behave like a browser ``canvas-confetti`` burst."""
from __future__ import annotations

import math
import random
from dataclasses import dataclass

import pygame

from . import config

# Motion constants are expressed per 60 Hz frame and scaled by dt.
_FRAME_SECONDS = 1 / 60.0


@dataclass
class Confetto:
    x: float
    y: float
    angle: float         # direction of travel, radians (screen y grows down)
    velocity: float      # px per frame
    wobble: float
    wobble_speed: float
    tilt: float
    color: tuple
    size: float
    age: float = 0.0
    life: float = config.CONFETTI_LIFETIME_SECONDS


class ParticleSystem:
    def __init__(self, rng: random.Random | None = None) -> None:
        self.particles: list[Confetto] = []
        self.rng = rng or random.Random()

    def confetti_count(self, winners: int) -> int:
        """More winners, bigger burst, bounded by the particle budget."""
        room = max(0, config.PARTICLE_MAX - len(self.particles))
        return min(room, config.CONFETTI_PER_WINNER * max(1, winners))

    def burst(self, cx: float, cy: float, count: int, spread_degrees: float = config.CONFETTI_SPREAD_DEGREES) -> None:
        """Fire `count` flakes upward from (cx, cy) in a cone `spread_degrees` wide."""
        rng = self.rng
        half_spread = math.radians(spread_degrees) / 2
        for _ in range(count):
            self.particles.append(Confetto(
                x=cx,
                y=cy,
                angle=-math.pi / 2 + rng.uniform(-half_spread, half_spread),
                velocity=config.CONFETTI_START_VELOCITY * rng.uniform(0.5, 1.5),
                wobble=rng.uniform(0, 10),
                wobble_speed=rng.uniform(0.05, 0.11),
                tilt=rng.uniform(0.25, 0.75) * math.pi,
                color=rng.choice(config.CONFETTI_COLORS),
                size=rng.uniform(8, 14),
            ))

    def update(self, dt: float) -> None:
        frames = dt / _FRAME_SECONDS
        decay = config.CONFETTI_DECAY ** frames
        alive: list[Confetto] = []
        for p in self.particles:
            p.age += dt
            if p.age >= p.life:
                continue
            p.x += math.cos(p.angle) * p.velocity * frames
            p.y += (math.sin(p.angle) * p.velocity + config.CONFETTI_GRAVITY) * frames
            p.velocity *= decay
            p.wobble += p.wobble_speed * frames
            p.tilt += 0.1 * frames
            alive.append(p)
        self.particles = alive

    def draw(self, surface: pygame.Surface, offset_x: float = 0, offset_y: float = 0) -> None:
        for p in self.particles:
            # Full size until the last third of its life, then shrink away.
            size = p.size * min(1.0, 3.0 * (1.0 - p.age / p.life))
            if size < 1:
                continue
            cx = p.x + offset_x + size * math.cos(p.wobble)
            cy = p.y + offset_y + size * math.sin(p.wobble)
            pygame.draw.polygon(surface, p.color[:3], _flake(cx, cy, size, p.wobble, p.tilt))


def _flake(cx: float, cy: float, size: float, rotation: float, tilt: float) -> list[tuple[float, float]]:
    """Corners of a rectangle spun by `rotation` and squashed by `tilt` as it flips."""
    half_w = size / 2
    half_h = max(0.5, size / 2 * abs(math.cos(tilt)))
    cos_r, sin_r = math.cos(rotation), math.sin(rotation)
    return [
        (cx + dx * cos_r - dy * sin_r, cy + dx * sin_r + dy * cos_r)
        for dx, dy in ((-half_w, -half_h), (half_w, -half_h), (half_w, half_h), (-half_w, half_h))
    ]
