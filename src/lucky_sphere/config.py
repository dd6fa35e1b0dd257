from __future__ import annotations

import os
from pathlib import Path

import pygame

ROOT_DIR = Path(__file__).resolve().parents[2]

NAMES_FILE = ROOT_DIR / "names.txt"

# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
WINDOW_SIZE = (1920, 1080)
FPS = 60
TITLE = "LUCKY SPHERE"

# ---------------------------------------------------------------------------
# Draw Timing
# ---------------------------------------------------------------------------
DRAW_DURATION_SECONDS = 8.0
SPEECH_DELAY_SECONDS = 0.6
DEFAULT_WINNER_COUNT = 1

# ---------------------------------------------------------------------------
# Speed Curve
# ---------------------------------------------------------------------------
BASE_SPEED = 2.0
PEAK_SPEED = 35.0
RAMP_UP_END = 0.2
RAMP_DOWN_START = 0.8
PLATEAU_WOBBLE = 3.0
PLATEAU_WOBBLE_PERIOD_MS = 50.0
# Radians per second of ring rotation for one unit of speed.
RING_SPIN_PER_SPEED = 0.12

# ---------------------------------------------------------------------------
# Ticks
# ---------------------------------------------------------------------------
TICK_INTERVAL_MIN_MS = 40.0
TICK_INTERVAL_MAX_MS = 500.0
TICK_FREQ_START = 600.0
TICK_FREQ_END = 300.0
TICK_DURATION_SECONDS = 0.05
TICK_VOLUME = 0.15

# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------
MIXER_SAMPLE_RATE = 44100
MIXER_CHANNELS = 1
MIXER_BUFFER = 512
SPEECH_VOLUME = 1.0

# Fanfare notes: (frequency_hz, start_offset_s, duration_s, waveform, volume)
FANFARE_NOTES = (
    (523.25, 0.00, 0.3, "sawtooth", 0.2),  # C5
    (523.25, 0.00, 0.3, "sine", 0.2),
    (659.25, 0.15, 0.3, "sawtooth", 0.2),  # E5
    (783.99, 0.30, 0.3, "sawtooth", 0.2),  # G5
    (523.25, 0.45, 2.5, "triangle", 0.3),  # impact chord C5, C6, E6
    (1046.50, 0.45, 2.5, "sawtooth", 0.2),
    (1318.51, 0.45, 2.5, "sine", 0.1),
)
# Bass sweep: (freq_from, freq_to, start_offset_s, sweep_s, duration_s, volume)
FANFARE_BASS_SWEEP = (130.81, 65.41, 0.45, 1.0, 2.0, 0.4)
# Master gain applied after mixing so stacked notes do not clip.
FANFARE_MASTER_GAIN = 0.6

# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------
API_KEY_ENV = "GEMINI_API_KEY"
SPEECH_MODEL = "gemini-2.5-flash-preview-tts"
SPEECH_VOICE = "Puck"
SPEECH_SAMPLE_RATE = 24000
# Requests that outlive the animation plus the speech delay are useless.
SPEECH_TIMEOUT_MS = int((DRAW_DURATION_SECONDS + SPEECH_DELAY_SECONDS) * 1000)

ANNOUNCEMENT_TEMPLATE = "Say cheerfully in Traditional Chinese: 恭喜！得獎者是 {names}！"
ANNOUNCEMENT_SEPARATOR = ", "
FALLBACK_TEMPLATE = "恭喜！！得獎者是！{names}！"
FALLBACK_SEPARATOR = "，還有，"

FALLBACK_VOICE_LOCALES = ("zh-TW", "zh-CN", "zh_TW", "zh_CN")
FALLBACK_VOICE_VENDOR = "Google"
FALLBACK_RATE_SCALE = 1.2
FALLBACK_PITCH_SCALE = 1.4
FALLBACK_VOLUME = 1.0

# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------
HOST_KEYS = {
    "start": (pygame.K_SPACE, pygame.K_RETURN),
    "dismiss": (pygame.K_BACKSPACE, pygame.K_x),
    "toggle_sound": pygame.K_m,
    "more_winners": (pygame.K_UP, pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS),
    "fewer_winners": (pygame.K_DOWN, pygame.K_MINUS, pygame.K_KP_MINUS),
    # Re-read the names file and API key file.
    "reload": pygame.K_r,
    "quit": pygame.K_q,
}

# ---------------------------------------------------------------------------
# External Controllers (big-button boxes over USB serial)
# ---------------------------------------------------------------------------
CONTROLLERS_ENABLED = True
CONTROLLER_BAUDRATE = 9600
CONTROLLER_SCAN_INTERVAL_SECONDS = 1.5
CONTROLLER_HANDSHAKE_TIMEOUT_SECONDS = 0.75
CONTROLLER_HANDSHAKE_COMMAND = "WHO_ARE_YOU?"
CONTROLLER_IDENTITY = "START_BUTTON"
CONTROLLER_SETTLE_SECONDS = 0.35
CONTROLLER_DEBOUNCE_SECONDS = 0.25
CONTROLLER_USB_MARKERS = ("arduino", "xiao", "rp2040", "usb", "cdc", "serial")

# Verbose logging for controllers, audio and speech.
LOGGING_DEBUG = os.environ.get("LUCKY_SPHERE_DEBUG", "") == "1"

# ---------------------------------------------------------------------------
# Color Palette
# ---------------------------------------------------------------------------
COLORS = {
    "bg_top": (10, 10, 24),
    "bg_bottom": (5, 5, 8),

    "text": (240, 240, 255),
    "muted": (110, 110, 150),

    "cyan": (34, 211, 238),
    "blue": (59, 130, 246),
    "purple": (139, 92, 246),
    "pink": (236, 72, 153),
    "winner": (250, 204, 21),
    "drawing": (244, 63, 94),

    "panel_bg": (24, 24, 32),
    "panel_border": (70, 70, 110),
    "panel_glow": (99, 102, 241),

    "white": (255, 255, 255),
    "black": (0, 0, 0),
}

NAME_COLORS = [
    (255, 51, 51),
    (255, 136, 0),
    (255, 204, 0),
    (204, 255, 0),
    (51, 255, 51),
    (0, 255, 153),
    (0, 255, 255),
    (51, 153, 255),
    (153, 51, 255),
    (255, 51, 204),
]

# ---------------------------------------------------------------------------
# Particles
# ---------------------------------------------------------------------------
PARTICLE_MAX = 1500
BG_STAR_COUNT = 120
CONFETTI_PER_WINNER = 200
CONFETTI_SPREAD_DEGREES = 100.0
CONFETTI_START_VELOCITY = 45.0
CONFETTI_DECAY = 0.9
CONFETTI_GRAVITY = 3.0
CONFETTI_LIFETIME_SECONDS = 200 / 60.0
CONFETTI_COLORS = [
    (59, 130, 246),
    (139, 92, 246),
    (236, 72, 153),
    (250, 204, 21),
    (255, 255, 255),
]

# ---------------------------------------------------------------------------
# Fonts (tried in order, first match wins)
# ---------------------------------------------------------------------------
FONT_NAMES = ["Noto Sans CJK TC", "Microsoft JhengHei", "PingFang TC", "Arial Unicode MS", "Arial"]

# ---------------------------------------------------------------------------
# Default Pool
# ---------------------------------------------------------------------------
DEFAULT_NAMES = [
    "Ann_Chen", "張幸福", "John_Doe", "李小龍", "Sarah_Wang", "王大明",
    "Peter_Pan", "林美玲", "Emma_Watson", "陳阿土", "Jason_Momoa", "劉德華",
    "Sophia_Lee", "張學友", "Chris_Evans", "周杰倫", "Taylor_Swift", "蔡依林",
    "Robert_Downey", "林志玲", "Keanu_Reeves", "郭富城", "Scarlett_J", "梁朝偉",
    "Tom_Cruise", "楊紫瓊", "David_Beckham", "周星馳", "Lady_Gaga", "鄧紫棋",
    "Elon_Musk", "金城武", "Bill_Gates", "王祖賢", "Steve_Jobs", "舒淇",
    "Mark_Zuckerberg", "彭于晏", "Jeff_Bezos", "五月天",
]
