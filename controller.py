"""
BalanceController — Layer 2 (Game Logic)

Owns the GameWorld (pins, platform, ball, hazards, game state) and runs the
per-tick pipeline in a fixed order:

  move_pins → rebuild_platform → physics step → detect_hazards → recover_ball

Communicates with Layer 3 (main.py / Ursina renderer, server.py / browser)
via two queues:
  - pending_events  : rendering commands (spawn_world, ball_lost, restart, …)
  - physics_events  : contact events from the last tick

Layer 3 calls:
  ctrl.tick(inputs, dt)       — advance one frame
  ctrl.reset()                — full world restart
  ctrl.set_layout(name)       — switch hazard layout (restarts)
  ctrl.readout()              — angle / pin heights / game-over for the HUD
"""

import enum
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from geometry import segment_pose, segment_angle_deg, overlap_fraction
from hazard_layouts import get_layout, DEFAULT_LAYOUT
from physics import (
    PhysicsWorld, Body, Constraint,
    CATEGORY_PLATFORM, CATEGORY_WALL, CATEGORY_BALL, CATEGORY_HAZARD, MASK_ALL,
    WORLD_HEIGHT,
)

# ── Board constants ───────────────────────────────────────────────────────────
PIN_LEFT_X: float = 200.0
PIN_RIGHT_X: float = 600.0
PIN_START_Y: float = 300.0
PIN_RADIUS: float = 10.0
PIN_STEP: float = 1.0          # px per tick
PIN_MIN_Y: float = 100.0
PIN_MAX_Y: float = 500.0
MAX_TILT_DEG: float = 30.0

PLATFORM_THICKNESS: float = 10.0
PLATFORM_CHAMFER: float = 5.0
PLATFORM_FRICTION: float = 0.001

WALL_THICKNESS: float = 20.0

BALL_RADIUS: float = 12.0
BALL_SPAWN_X: float = 400.0
SPAWN_OFFSET: float = 30.0     # ball spawns this far above the platform center
WORLD_BOTTOM: float = WORLD_HEIGHT

HAZARD_RADIUS: float = float(math.ceil(BALL_RADIUS * 1.1))
LOSS_THRESHOLD: float = 0.8    # fraction of the ball's area inside a hazard
FADE_DURATION: float = 0.5     # seconds, cosmetic

BALL_OPTIONS = {
    "restitution":  0.001,
    "friction":     0.001,
    "density":      0.001,
    "friction_air": 0.0005,
    "category":     CATEGORY_BALL,
    "mask":         MASK_ALL,
    "label":        "ball",
}

DEFAULT_INFO_MSG = (
    "W/S: Left pin up/down   I/K: Right pin up/down   [Esc] Restart  [1-3] Layout"
)
GAME_OVER_MSG = "GAME OVER\nPress ESC to restart"


class GameState(enum.Enum):
    PLAYING = 0
    GAME_OVER = 1


class Side(enum.Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass
class Pin:
    """Fixed-x anchor the player moves vertically."""
    side: Side
    x: float
    y: float
    body: Optional[Body] = None

    @property
    def position(self) -> tuple:
        return (self.x, self.y)


@dataclass
class Platform:
    """Platform pose derived from the pins; replaced every tick."""
    center: tuple
    length: float
    angle: float
    body: Body

    @property
    def angle_deg(self) -> float:
        return math.degrees(self.angle)


@dataclass
class Hazard:
    index: int
    position: tuple
    radius: float = HAZARD_RADIUS
    body: Optional[Body] = None


@dataclass
class Ball:
    body: Body
    radius: float = BALL_RADIUS

    @property
    def position(self) -> np.ndarray:
        return self.body.position

    @property
    def velocity(self) -> np.ndarray:
        return self.body.velocity

    @property
    def visible(self) -> bool:
        return self.body.visible


@dataclass
class InputState:
    """Key-down state sampled once per tick."""
    left_up: bool = False
    left_down: bool = False
    right_up: bool = False
    right_down: bool = False
    restart: bool = False

    @classmethod
    def from_keys(cls, keys) -> "InputState":
        """Build from a key→held mapping (Ursina held_keys or a plain dict)."""
        return cls(**{attr: bool(keys.get(key, False))
                      for attr, key in KEY_BINDINGS.items()})


KEY_BINDINGS = {
    "left_up":    "w",
    "left_down":  "s",
    "right_up":   "i",
    "right_down": "k",
    "restart":    "escape",
}


@dataclass
class GameWorld:
    """Every mutable entity of one game, owned by the controller."""
    physics: PhysicsWorld
    left_pin: Pin
    right_pin: Pin
    hazards: List[Hazard] = field(default_factory=list)
    walls: List[Body] = field(default_factory=list)
    ball: Optional[Ball] = None
    platform: Optional[Platform] = None
    left_constraint: Optional[Constraint] = None
    right_constraint: Optional[Constraint] = None
    state: GameState = GameState.PLAYING
    loss: Optional[dict] = None
    layout: str = DEFAULT_LAYOUT

    @property
    def tilt_deg(self) -> float:
        return segment_angle_deg(self.left_pin.position, self.right_pin.position)


# ──────────────────────────────────────────────────────────────────────────────
# World setup
# ──────────────────────────────────────────────────────────────────────────────

def build_world(layout: str = DEFAULT_LAYOUT) -> GameWorld:
    """Create pins, walls, hazards, the first platform and the ball."""
    hazard_positions = get_layout(layout)
    physics = PhysicsWorld()

    left = Pin(Side.LEFT, PIN_LEFT_X, PIN_START_Y)
    right = Pin(Side.RIGHT, PIN_RIGHT_X, PIN_START_Y)
    for pin in (left, right):
        pin.body = physics.add_circle(pin.x, pin.y, PIN_RADIUS, is_static=True,
                                      label=f"pin_{pin.side.value}")

    world = GameWorld(physics=physics, left_pin=left, right_pin=right, layout=layout)

    # Side walls at the pins' x, only the ball touches them
    for x, name in ((PIN_LEFT_X, "wall_left"), (PIN_RIGHT_X, "wall_right")):
        world.walls.append(physics.add_rectangle(
            x, WORLD_HEIGHT / 2, WALL_THICKNESS, WORLD_HEIGHT,
            is_static=True, category=CATEGORY_WALL, mask=CATEGORY_BALL, label=name,
        ))

    for i, (hx, hy) in enumerate(hazard_positions):
        body = physics.add_circle(hx, hy, HAZARD_RADIUS, is_static=True, is_sensor=True,
                                  category=CATEGORY_HAZARD, mask=CATEGORY_BALL,
                                  label=f"hazard_{i}")
        world.hazards.append(Hazard(i, (hx, hy), HAZARD_RADIUS, body))

    platform = rebuild_platform(world)
    world.ball = Ball(physics.add_circle(BALL_SPAWN_X, platform.center[1] - SPAWN_OFFSET,
                                         BALL_RADIUS, **BALL_OPTIONS))
    return world


# ──────────────────────────────────────────────────────────────────────────────
# Pin Controller
# ──────────────────────────────────────────────────────────────────────────────

def move_pins(world: GameWorld, inputs: InputState) -> bool:
    """Step the pins from held keys. Returns True if either pin moved.

    Both pins are judged against the tilt measured before either moves, so
    the result does not depend on which pin is handled first.
    """
    if world.state == GameState.GAME_OVER:
        return False

    left, right = world.left_pin, world.right_pin
    angle = world.tilt_deg
    too_left = angle <= -MAX_TILT_DEG
    too_right = angle >= MAX_TILT_DEG
    before = (left.y, right.y)

    if inputs.left_up and left.y > PIN_MIN_Y and not too_right:
        left.y -= PIN_STEP
    if inputs.left_down and left.y < PIN_MAX_Y and not too_left:
        left.y += PIN_STEP

    if inputs.right_up and right.y > PIN_MIN_Y and not too_left:
        right.y -= PIN_STEP
    if inputs.right_down and right.y < PIN_MAX_Y and not too_right:
        right.y += PIN_STEP

    return (left.y, right.y) != before


# ──────────────────────────────────────────────────────────────────────────────
# Platform Rebuilder
# ──────────────────────────────────────────────────────────────────────────────

def release_platform(world: GameWorld) -> None:
    """Remove the platform body and both constraints. Safe when none exist."""
    physics = world.physics
    if world.platform is not None:
        physics.remove_body(world.platform.body)
        world.platform = None
    if world.left_constraint is not None:
        physics.remove_constraint(world.left_constraint)
        world.left_constraint = None
    if world.right_constraint is not None:
        physics.remove_constraint(world.right_constraint)
        world.right_constraint = None


def rebuild_platform(world: GameWorld) -> Platform:
    """Replace the platform and its end constraints from the current pins."""
    physics = world.physics
    left, right = world.left_pin, world.right_pin
    for pin in (left, right):
        physics.set_position(pin.body, pin.position)

    release_platform(world)

    pose = segment_pose(left.position, right.position)
    body = physics.add_rectangle(
        pose.midpoint[0], pose.midpoint[1], pose.length, PLATFORM_THICKNESS,
        chamfer=PLATFORM_CHAMFER,
        friction=PLATFORM_FRICTION,
        is_static=True,
        category=CATEGORY_PLATFORM,
        mask=CATEGORY_BALL,
        label="platform",
    )
    physics.set_angle(body, pose.angle)
    world.platform = Platform(pose.midpoint, pose.length, pose.angle, body)

    half = pose.length / 2
    world.left_constraint = physics.add_constraint(
        body, left.body, length=0.0, stiffness=1.0, point_a=(-half, 0.0))
    world.right_constraint = physics.add_constraint(
        body, right.body, length=0.0, stiffness=1.0, point_a=(half, 0.0))
    return world.platform


# ──────────────────────────────────────────────────────────────────────────────
# Hazard Detector
# ──────────────────────────────────────────────────────────────────────────────

def detect_hazards(world: GameWorld) -> Optional[dict]:
    """Return a ``ball_lost`` event the first time the ball sinks into a hazard.

    Hazards are checked in layout order; the first one past LOSS_THRESHOLD
    ends the game and no further hazards are examined.
    """
    if world.state == GameState.GAME_OVER:
        return None

    ball = world.ball
    for hazard in world.hazards:
        d = float(np.linalg.norm(ball.position - np.asarray(hazard.position)))
        if d >= hazard.radius + ball.radius:
            continue
        fraction = overlap_fraction(d, ball.radius, hazard.radius)
        if fraction > LOSS_THRESHOLD:
            return _trigger_loss(world, hazard, fraction)
    return None


def _trigger_loss(world: GameWorld, hazard: Hazard, fraction: float) -> dict:
    ball = world.ball
    ball_pos = [float(ball.position[0]), float(ball.position[1])]
    world.state = GameState.GAME_OVER
    world.physics.set_static(ball.body, True)
    ball.body.visible = False
    world.loss = {
        "type":       "ball_lost",
        "hazard":     hazard.index,
        "hazard_pos": [float(hazard.position[0]), float(hazard.position[1])],
        "ball_pos":   ball_pos,
        "overlap":    round(fraction, 4),
        "duration":   FADE_DURATION,
    }
    return world.loss


# ──────────────────────────────────────────────────────────────────────────────
# Ball Recovery
# ──────────────────────────────────────────────────────────────────────────────

def recover_ball(world: GameWorld) -> bool:
    """Put a ball that fell past WORLD_BOTTOM back above the platform."""
    ball = world.ball
    if ball.position[1] <= WORLD_BOTTOM:
        return False
    cx, cy = world.platform.center
    world.physics.set_position(ball.body, (cx, cy - SPAWN_OFFSET))
    world.physics.set_velocity(ball.body, (0.0, 0.0))
    return True


# ──────────────────────────────────────────────────────────────────────────────
# Controller (state machine + tick pipeline)
# ──────────────────────────────────────────────────────────────────────────────

class BalanceController:
    """Layer 2: game-state machine + physics orchestration."""

    # ── Class-level constants ─────────────────────────────────────────────────
    SIM_DT    = 1.0 / 240.0    # upper bound on a physics sub-step
    FRAME_DT  = 1.0 / 60.0

    def __init__(self, layout: str = DEFAULT_LAYOUT):
        get_layout(layout)
        self.layout = layout
        self.world: Optional[GameWorld] = None
        self.tick_count = 0

        # Status / info messages (L3 reads these to update text entities)
        self.status_msg = ""
        self.info_msg   = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list[dict] = []   # L3 rendering commands
        self.physics_events: list[dict] = []   # contacts of the last tick

        self.init()

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def init(self) -> None:
        """Build a fresh world for the current layout."""
        self.world = build_world(self.layout)
        self.tick_count = 0
        self.status_msg = ""
        self.physics_events.clear()
        self.pending_events.append({"type": "spawn_world", "layout": self.layout})
        print(f"[GAME] world ready: layout={self.layout} hazards={len(self.world.hazards)}")

    def reset(self) -> None:
        """Full restart: pins level, ball respawned, state PLAYING."""
        print(f"[GAME] restart (was {self.world.state.name})")
        self.pending_events.append({"type": "restart"})
        self.init()

    def set_layout(self, name: str) -> None:
        get_layout(name)
        self.layout = name
        print(f"[GAME] layout → {name}")
        self.reset()

    @property
    def state(self) -> GameState:
        return self.world.state

    @property
    def game_over(self) -> bool:
        return self.world.state == GameState.GAME_OVER

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def tick(self, inputs: Optional[InputState] = None, dt: float = FRAME_DT) -> None:
        """Advance one frame. Called every frame by L3."""
        if inputs is None:
            inputs = InputState()
        if inputs.restart:
            self.reset()
            return

        world = self.world
        move_pins(world, inputs)
        rebuild_platform(world)
        self._step_physics(dt)

        loss = detect_hazards(world)
        if loss is not None:
            self.pending_events.append(loss)
            self.status_msg = GAME_OVER_MSG
            print(f"[GAME] ball lost in hazard {loss['hazard']} "
                  f"(overlap {loss['overlap']:.2f})")

        if recover_ball(world):
            pos = world.ball.position
            self.pending_events.append({
                "type": "ball_recovered",
                "pos": [float(pos[0]), float(pos[1])],
            })

        self.tick_count += 1

    def _step_physics(self, dt: float) -> None:
        self.physics_events.clear()
        if dt <= 0.0:
            return
        substeps = max(1, math.ceil(dt / self.SIM_DT - 1e-9))
        sub_dt = dt / substeps
        physics = self.world.physics
        for _ in range(substeps):
            physics.update(sub_dt)
            self.physics_events.extend(physics.events)

    # ──────────────────────────────────────────────────────────────────────────
    # Display layer
    # ──────────────────────────────────────────────────────────────────────────

    def readout(self) -> dict:
        """Values for on-screen numeric readouts, refreshed every tick."""
        world = self.world
        angle = world.tilt_deg
        return {
            "angle":            round(angle),
            "angle_exact":      angle,
            "left_pin_height":  round(world.left_pin.y),
            "right_pin_height": round(world.right_pin.y),
            "game_over":        self.game_over,
            "loss":             world.loss,
        }

    def max_overlap(self) -> float:
        """Largest hazard overlap fraction of the ball right now (HUD gauge)."""
        world = self.world
        best = 0.0
        for hazard in world.hazards:
            d = float(np.linalg.norm(world.ball.position - np.asarray(hazard.position)))
            if d < hazard.radius + world.ball.radius:
                best = max(best, overlap_fraction(d, world.ball.radius, hazard.radius))
        return best
