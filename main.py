"""
Balance Platform Visualizer (3-Tier Architecture)
Layer 3: Ursina rendering / input handling.
Layer 2: controller.py (BalanceController)
Layer 1: physics.py (PhysicsWorld)

W/S move the left pin, I/K the right pin. Esc restarts, 1-3 switch layouts.
"""

import tempfile
import wave
import os
from pathlib import Path
import numpy as np
from ursina import (
    Ursina, Entity, Text, Texture, Audio, camera, color, curve, window,
    held_keys, Vec3, destroy,
    time as ursina_time,
)
from PIL import Image, ImageDraw

from physics import WORLD_WIDTH, WORLD_HEIGHT
from controller import (
    BalanceController, InputState, GAME_OVER_MSG,
    BALL_RADIUS, PIN_RADIUS, PLATFORM_THICKNESS, WALL_THICKNESS,
)
from hazard_layouts import LAYOUT_KEYS

# ── Layer 2: controller instance ──────────────────────────────────────────────
ctrl = BalanceController()

_asset_dir = tempfile.mkdtemp(prefix="balance_assets_")


def _to_scene(x, y, z=0.0):
    """Screen pixels (y down) → scene units (y up, origin at board center)."""
    return Vec3(x - WORLD_WIDTH / 2, WORLD_HEIGHT / 2 - y, z)


def _to_ui(x, y):
    """Screen pixels → camera.ui coordinates (height spans -0.5..0.5)."""
    return ((x - WORLD_WIDTH / 2) / WORLD_HEIGHT, (WORLD_HEIGHT / 2 - y) / WORLD_HEIGHT)


# ──────────────────────────────────────────
# Disc textures (PIL)
# ──────────────────────────────────────────

def _make_disc_texture(fill_rgb, stroke_rgb, size=64, stroke=4):
    """Filled disc with an outline on a transparent square."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse([0, 0, size - 1, size - 1], fill=fill_rgb + (255,),
                 outline=stroke_rgb + (255,), width=stroke)
    return img


_tex_cache = {}

_DISC_COLORS = {
    "pin":  ((255, 0, 0), (255, 0, 0)),
    "ball": ((136, 136, 136), (136, 136, 136)),
}


def _get_texture(name):
    """Return or create the disc texture for a sprite name."""
    if name in _tex_cache:
        return _tex_cache[name]
    fill, stroke = _DISC_COLORS[name]
    img = _make_disc_texture(fill, stroke)
    tex_path = os.path.join(_asset_dir, f"tex_{name}.png")
    img.save(tex_path)
    tex = Texture(tex_path)
    _tex_cache[name] = tex
    return tex


# ──────────────────────────────────────────
# Synthesized Sound Effects (numpy + wave)
# ──────────────────────────────────────────

def _synth_wav(filename, samples):
    """Write mono 16-bit 44100Hz WAV and return Path object."""
    path = os.path.join(_asset_dir, filename)
    data = np.clip(samples, -1.0, 1.0)
    data_int = (data * 32767).astype(np.int16)
    with wave.open(path, "w") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(44100)
        wf.writeframes(data_int.tobytes())
    return Path(path)


def _synth_tap():
    sr = 44100; dur = 0.06
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    env = np.exp(-t * 70)
    sig = env * np.sin(2 * np.pi * 520 * t)
    return _synth_wav("tap.wav", sig * 0.5)


def _synth_sink():
    """Falling sweep played when the ball drops into a hazard."""
    sr = 44100; dur = 0.5
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    freq = 660 * np.exp(-t * 3.0)
    phase = 2 * np.pi * np.cumsum(freq) / sr
    env = np.exp(-t * 4)
    return _synth_wav("sink.wav", np.sin(phase) * env * 0.7)


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="Balance Platform",
             size=(int(WORLD_WIDTH), int(WORLD_HEIGHT)))
window.color = color.black
camera.orthographic = True
camera.fov = WORLD_HEIGHT

# ── Board entities (L3 owns these) ────────────────────────────────────────────
wall_entities: list[Entity] = []
hazard_entities: list[Entity] = []
fade_entities: list[Entity] = []

pin_entities = [
    Entity(model="quad", texture=_get_texture("pin"), scale=PIN_RADIUS * 2, z=-0.2)
    for _ in range(2)
]
platform_entity = Entity(model="quad", color=color.hex("#666666"), z=-0.1)
ball_entity = Entity(model="quad", texture=_get_texture("ball"),
                     scale=BALL_RADIUS * 2, z=-0.3)

# ── Sound effects ─────────────────────────────────────────────────────────────
_tap_sound = Audio(str(_synth_tap()), autoplay=False, volume=0.4)
_sink_sound = Audio(str(_synth_sink()), autoplay=False)
TAP_MIN_SPEED = 60.0

# ── UI ────────────────────────────────────────────────────────────────────────
_TEXT_SCALE = 1.1
angle_text = Text(text="Angle: 0°", position=_to_ui(16, 16), scale=_TEXT_SCALE)
left_pin_text = Text(text="Left Pin Height: 300", position=_to_ui(16, 40), scale=_TEXT_SCALE)
right_pin_text = Text(text="Right Pin Height: 300", position=_to_ui(16, 64), scale=_TEXT_SCALE)
Text(text="W/S: Move Left Pin Up/Down", position=_to_ui(16, 520), scale=_TEXT_SCALE)
Text(text="I/K: Move Right Pin Up/Down", position=_to_ui(16, 550), scale=_TEXT_SCALE)
game_over_text = Text(text=GAME_OVER_MSG, origin=(0, 0), position=(0, 0),
                      scale=2.0, color=color.red, enabled=False)


# ──────────────────────────────────────────
# Scene building
# ──────────────────────────────────────────

def _clear(entities):
    for e in entities:
        destroy(e)
    entities.clear()


def _spawn_world():
    """Rebuild walls and hazard sprites for the controller's current world."""
    _clear(wall_entities)
    _clear(hazard_entities)
    world = ctrl.world
    for wall in world.walls:
        wall_entities.append(Entity(
            model="quad", color=color.hex("#666666"),
            position=_to_scene(wall.position[0], wall.position[1], 0.1),
            scale=(WALL_THICKNESS, WORLD_HEIGHT),
        ))
    for hazard in world.hazards:
        hazard_entities.append(Entity(
            model="circle", color=color.red,
            position=_to_scene(hazard.position[0], hazard.position[1]),
            scale=hazard.radius * 2,
        ))


def _start_fade(ev: dict):
    """Shrink and fade a ball-shaped marker into the hazard center."""
    ent = Entity(model="quad", texture=_get_texture("ball"),
                 position=_to_scene(*ev["ball_pos"], -0.4), scale=BALL_RADIUS * 2)
    dur = ev["duration"]
    ent.animate_position(_to_scene(*ev["hazard_pos"], -0.4), duration=dur, curve=curve.out_quad)
    ent.animate_scale(0, duration=dur, curve=curve.out_quad)
    ent.fade_out(duration=dur, curve=curve.out_quad)
    destroy(ent, delay=dur)
    fade_entities.append(ent)


# ──────────────────────────────────────────
# Controller event dispatcher (L2 → L3)
# ──────────────────────────────────────────

def _handle_controller_event(ev: dict):
    t = ev["type"]
    if t == "spawn_world":
        _spawn_world()
    elif t == "restart":
        game_over_text.enabled = False
        fade_entities.clear()
    elif t == "ball_lost":
        game_over_text.enabled = True
        _sink_sound.play()
        _start_fade(ev)


def _play_contact_sounds(events):
    if any(ev["type"] == "contact" and ev["speed"] >= TAP_MIN_SPEED for ev in events):
        _tap_sound.play()


def _sync_entities():
    world = ctrl.world
    for ent, pin in zip(pin_entities, (world.left_pin, world.right_pin)):
        ent.position = _to_scene(pin.x, pin.y, -0.2)

    platform = world.platform
    platform_entity.position = _to_scene(platform.center[0], platform.center[1], -0.1)
    platform_entity.scale = (platform.length, PLATFORM_THICKNESS)
    platform_entity.rotation_z = platform.angle_deg

    ball = world.ball
    ball_entity.position = _to_scene(ball.position[0], ball.position[1], -0.3)
    ball_entity.enabled = ball.visible

    readout = ctrl.readout()
    angle_text.text = f"Angle: {readout['angle']}°"
    left_pin_text.text = f"Left Pin Height: {readout['left_pin_height']}"
    right_pin_text.text = f"Right Pin Height: {readout['right_pin_height']}"


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    if key == "escape":
        ctrl.reset()
    elif key in LAYOUT_KEYS:
        ctrl.set_layout(LAYOUT_KEYS[key])


# ──────────────────────────────────────────
# Per-frame update
# ──────────────────────────────────────────

def update():
    inputs = InputState.from_keys(held_keys)
    inputs.restart = False   # edge-triggered in input()
    ctrl.tick(inputs, min(ursina_time.dt, 0.05))

    for ev in ctrl.pending_events:
        _handle_controller_event(ev)
    ctrl.pending_events.clear()

    _play_contact_sounds(ctrl.physics_events)
    _sync_entities()


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    app.run()
