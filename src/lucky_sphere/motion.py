"""Speed curve and tick cadence for the draw animation."""
from __future__ import annotations

import math

from . import config


def speed_at(progress: float, wall_ms: float) -> float:
    """
    Animation speed for a normalized draw progress in [0, 1).

    Linear ramp-up, a plateau that wobbles with wall-clock time, then a cubic
    ease-out back to the base speed.
    """
    base = config.BASE_SPEED
    peak = config.PEAK_SPEED
    if progress < config.RAMP_UP_END:
        ramp = max(0.0, progress) / config.RAMP_UP_END
        return base + ramp * (peak - base)
    if progress < config.RAMP_DOWN_START:
        return peak + config.PLATEAU_WOBBLE * math.sin(wall_ms / config.PLATEAU_WOBBLE_PERIOD_MS)
    ease_out = min(1.0, (progress - config.RAMP_DOWN_START) / (1.0 - config.RAMP_DOWN_START))
    return peak * (1 - ease_out ** 3) + base


def tick_interval_ms(speed: float) -> float:
    span = config.PEAK_SPEED - config.BASE_SPEED
    speed_factor = max(0.0, min(1.0, (speed - config.BASE_SPEED) / span))
    return config.TICK_INTERVAL_MAX_MS - speed_factor * (
        config.TICK_INTERVAL_MAX_MS - config.TICK_INTERVAL_MIN_MS
    )


class TickScheduler:
    def __init__(self) -> None:
        self.next_tick_ms = 0.0

    def reset(self) -> None:
        self.next_tick_ms = 0.0

    def poll(self, speed: float, now_ms: float) -> bool:
        """Return True when a tick is due, and push the watermark forward."""
        if now_ms <= self.next_tick_ms:
            return False
        self.next_tick_ms = now_ms + tick_interval_ms(speed)
        return True
