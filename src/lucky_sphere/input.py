from __future__ import annotations

from dataclasses import dataclass

from . import config


@dataclass(frozen=True)
class HostAction:
    action: str  # start | dismiss | toggle_sound | more_winners | fewer_winners | reload | quit


class InputManager:
    def __init__(self) -> None:
        self.host_keys = dict(config.HOST_KEYS)

    def handle_key(self, key: int) -> HostAction | None:
        for action, host_key in self.host_keys.items():
            if isinstance(host_key, int) and key == host_key:
                return HostAction(action=action)
            if not isinstance(host_key, int) and key in host_key:
                return HostAction(action=action)
        return None
