"""
2D Balance Platform Physics World
Static/dynamic circles and chamfered rectangles, distance constraints,
gravity integration and contact resolution.

Screen coordinates: x to the right, y downward, units are pixels.
"""

import enum
import math
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

# ──────────────────────────────────────────────
# Constants (pixels, seconds)
# ──────────────────────────────────────────────
WORLD_WIDTH: float = 800.0
WORLD_HEIGHT: float = 600.0
REFERENCE_HZ: float = 60.0   # friction_air is defined per 1/60 s step

# Collision categories (bit flags)
CATEGORY_PLATFORM: int = 0x0001
CATEGORY_WALL: int = 0x0002
CATEGORY_BALL: int = 0x0004
CATEGORY_HAZARD: int = 0x0008
MASK_ALL: int = 0xFFFF

# Numerical thresholds
VELOCITY_THRESHOLD: float = 1e-6
DISTANCE_EPSILON: float = 1e-9

# ── Runtime-editable behavior constants ───────────────────────────────────────
# These are read by name every call, so front-ends can mutate them live via:
#   import physics as _phys;  _phys.GRAVITY = 800.0
GRAVITY: float = 1000.0            # px/s^2, +y is down
AIR_FRICTION_SCALE: float = 1.0    # multiplier on each body's friction_air
FRICTION_SCALE: float = 1.0        # multiplier on contact friction
RESTITUTION_SCALE: float = 1.0     # multiplier on contact restitution
CONTACT_SLOP: float = 0.05         # px of penetration left uncorrected


class Shape(enum.Enum):
    CIRCLE = 0
    RECTANGLE = 1


def _rotate(vec: np.ndarray, angle: float) -> np.ndarray:
    cs, sn = math.cos(angle), math.sin(angle)
    return np.array([vec[0] * cs - vec[1] * sn, vec[0] * sn + vec[1] * cs])


@dataclass
class Body:
    """Rigid body with a circle or chamfered-rectangle shape."""
    handle: int
    shape: Shape
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    angle: float = 0.0
    radius: float = 0.0
    width: float = 0.0
    height: float = 0.0
    chamfer: float = 0.0
    is_static: bool = False
    is_sensor: bool = False
    friction: float = 0.1
    restitution: float = 0.0
    friction_air: float = 0.01
    density: float = 0.001
    category: int = CATEGORY_PLATFORM
    mask: int = MASK_ALL
    visible: bool = True
    label: str = ""

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)

    @property
    def mass(self) -> float:
        if self.shape == Shape.CIRCLE:
            return self.density * math.pi * self.radius ** 2
        return self.density * self.width * self.height

    @property
    def inverse_mass(self) -> float:
        if self.is_static or self.mass <= 0.0:
            return 0.0
        return 1.0 / self.mass

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    def collides_with(self, other: "Body") -> bool:
        """Category/mask filter: both sides must accept each other."""
        return bool(self.mask & other.category) and bool(other.mask & self.category)

    def to_world(self, local) -> np.ndarray:
        return self.position + _rotate(np.asarray(local, dtype=float), self.angle)

    def to_local(self, point) -> np.ndarray:
        return _rotate(np.asarray(point, dtype=float) - self.position, -self.angle)


@dataclass
class Constraint:
    """Distance constraint between a local point on body_a and one on body_b."""
    handle: int
    body_a: Body
    body_b: Body
    point_a: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    point_b: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    length: float = 0.0
    stiffness: float = 1.0

    def __post_init__(self):
        self.point_a = np.array(self.point_a, dtype=float)
        self.point_b = np.array(self.point_b, dtype=float)


BodyRef = Union[Body, int]


class PhysicsWorld:
    """Minimal 2D rigid-body world used by the balance controller."""

    def __init__(self, width: float = WORLD_WIDTH, height: float = WORLD_HEIGHT):
        self.width = width
        self.height = height
        self.bodies: Dict[int, Body] = {}
        self.constraints: Dict[int, Constraint] = {}
        self.events: list = []
        self._next_handle = 1

    # ──────────────────────────────────────────
    # Body / constraint registry
    # ──────────────────────────────────────────
    def _take_handle(self) -> int:
        handle = self._next_handle
        self._next_handle += 1
        return handle

    def add_circle(self, x: float, y: float, radius: float, **options) -> Body:
        body = Body(self._take_handle(), Shape.CIRCLE, position=[x, y],
                    radius=radius, **options)
        self.bodies[body.handle] = body
        return body

    def add_rectangle(self, x: float, y: float, width: float, height: float,
                      angle: float = 0.0, **options) -> Body:
        """Add a rectangle; ``chamfer`` rounds its corners with that radius."""
        body = Body(self._take_handle(), Shape.RECTANGLE, position=[x, y],
                    width=width, height=height, angle=angle, **options)
        body.chamfer = max(0.0, min(body.chamfer, width / 2, height / 2))
        self.bodies[body.handle] = body
        return body

    @staticmethod
    def _handle_of(ref) -> int:
        return ref.handle if isinstance(ref, (Body, Constraint)) else int(ref)

    def remove_body(self, body: BodyRef) -> None:
        """Remove a body. Raises KeyError for a handle that is not registered."""
        del self.bodies[self._handle_of(body)]

    def add_constraint(self, body_a: Body, body_b: Body, length: float = 0.0,
                       stiffness: float = 1.0, point_a=(0.0, 0.0),
                       point_b=(0.0, 0.0)) -> Constraint:
        constraint = Constraint(self._take_handle(), body_a, body_b,
                                point_a=point_a, point_b=point_b,
                                length=length, stiffness=stiffness)
        self.constraints[constraint.handle] = constraint
        return constraint

    def remove_constraint(self, constraint) -> None:
        """Remove a constraint. Raises KeyError for an unknown handle."""
        del self.constraints[self._handle_of(constraint)]

    def has_body(self, body: BodyRef) -> bool:
        return self._handle_of(body) in self.bodies

    # ──────────────────────────────────────────
    # Body mutators
    # ──────────────────────────────────────────
    @staticmethod
    def set_position(body: Body, position) -> None:
        body.position = np.array(position, dtype=float)

    @staticmethod
    def set_velocity(body: Body, velocity) -> None:
        body.velocity = np.array(velocity, dtype=float)

    @staticmethod
    def set_angle(body: Body, angle: float) -> None:
        body.angle = float(angle)

    @staticmethod
    def set_static(body: Body, is_static: bool) -> None:
        body.is_static = bool(is_static)
        if body.is_static:
            body.velocity[:] = 0.0

    @staticmethod
    def world_point(body: Body, local) -> np.ndarray:
        return body.to_world(local)

    def constraint_error(self, constraint: Constraint) -> float:
        """Distance between the two anchored points minus the rest length."""
        pa = constraint.body_a.to_world(constraint.point_a)
        pb = constraint.body_b.to_world(constraint.point_b)
        return float(np.linalg.norm(pb - pa)) - constraint.length

    # ──────────────────────────────────────────
    # Integration
    # ──────────────────────────────────────────
    def _integrate(self, body: Body, dt: float) -> None:
        body.velocity[1] += GRAVITY * dt
        damping = max(0.0, 1.0 - body.friction_air * AIR_FRICTION_SCALE)
        body.velocity *= damping ** (dt * REFERENCE_HZ)
        body.position = body.position + body.velocity * dt

    def _solve_constraints(self) -> None:
        """Pull anchored points together, split by inverse mass.

        A constraint between two static bodies moves nothing.
        """
        for c in self.constraints.values():
            inv_a = c.body_a.inverse_mass
            inv_b = c.body_b.inverse_mass
            inv_total = inv_a + inv_b
            if inv_total == 0.0:
                continue
            pa = c.body_a.to_world(c.point_a)
            pb = c.body_b.to_world(c.point_b)
            delta = pb - pa
            current = float(np.linalg.norm(delta))
            if current < DISTANCE_EPSILON:
                continue
            correction = delta / current * (current - c.length) * c.stiffness / inv_total
            c.body_a.position = c.body_a.position + correction * inv_a
            c.body_b.position = c.body_b.position - correction * inv_b

    # ──────────────────────────────────────────
    # Contacts
    # ──────────────────────────────────────────
    @staticmethod
    def _circle_circle_contact(a: Body, b: Body):
        """Return (normal from b to a, depth) or None."""
        diff = a.position - b.position
        dist = float(np.linalg.norm(diff))
        reach = a.radius + b.radius
        if dist >= reach:
            return None
        if dist < DISTANCE_EPSILON:
            return np.array([0.0, -1.0]), reach
        return diff / dist, reach - dist

    @staticmethod
    def _circle_rect_contact(circle: Body, rect: Body):
        """Return (normal from rect to circle, depth) or None.

        The rectangle is treated as an inner box of half extents
        (w/2 - chamfer, h/2 - chamfer) inflated by the chamfer radius.
        """
        local = rect.to_local(circle.position)
        hx = max(rect.width / 2 - rect.chamfer, 0.0)
        hy = max(rect.height / 2 - rect.chamfer, 0.0)
        closest = np.clip(local, [-hx, -hy], [hx, hy])
        diff = local - closest
        dist = float(np.linalg.norm(diff))
        reach = circle.radius + rect.chamfer
        if dist >= reach:
            return None

        if dist > DISTANCE_EPSILON:
            normal_local = diff / dist
            depth = reach - dist
        else:
            # center inside the inner box: exit through the nearest face
            gap_x = hx - abs(local[0])
            gap_y = hy - abs(local[1])
            if gap_x < gap_y:
                normal_local = np.array([1.0 if local[0] >= 0 else -1.0, 0.0])
                depth = gap_x + reach
            else:
                normal_local = np.array([0.0, 1.0 if local[1] >= 0 else -1.0])
                depth = gap_y + reach
        return _rotate(normal_local, rect.angle), depth

    def _find_contact(self, a: Body, b: Body):
        if a.shape == Shape.CIRCLE and b.shape == Shape.CIRCLE:
            return self._circle_circle_contact(a, b)
        if a.shape == Shape.CIRCLE and b.shape == Shape.RECTANGLE:
            return self._circle_rect_contact(a, b)
        if a.shape == Shape.RECTANGLE and b.shape == Shape.CIRCLE:
            hit = self._circle_rect_contact(b, a)
            if hit is None:
                return None
            return -hit[0], hit[1]
        # rectangle-rectangle pairs are not simulated
        return None

    def _resolve_contact(self, a: Body, b: Body, normal: np.ndarray, depth: float) -> None:
        """Positional correction, restitution impulse and Coulomb friction.

        ``normal`` points from b toward a.
        """
        inv_a, inv_b = a.inverse_mass, b.inverse_mass
        inv_total = inv_a + inv_b
        if inv_total == 0.0:
            return

        push = max(depth - CONTACT_SLOP, 0.0) / inv_total
        a.position = a.position + normal * push * inv_a
        b.position = b.position - normal * push * inv_b

        rel_vel = a.velocity - b.velocity
        vel_along_normal = float(np.dot(rel_vel, normal))
        if vel_along_normal >= 0:
            return

        self.events.append({
            "type": "contact", "a": a.label, "b": b.label,
            "speed": -vel_along_normal,
        })

        e = max(a.restitution, b.restitution) * RESTITUTION_SCALE
        jn = -(1.0 + e) * vel_along_normal / inv_total
        a.velocity = a.velocity + normal * jn * inv_a
        b.velocity = b.velocity - normal * jn * inv_b

        rel_vel = a.velocity - b.velocity
        tangent = rel_vel - np.dot(rel_vel, normal) * normal
        tang_mag = float(np.linalg.norm(tangent))
        if tang_mag > VELOCITY_THRESHOLD:
            mu = min(a.friction, b.friction) * FRICTION_SCALE
            jt = min(tang_mag / inv_total, mu * jn)
            tang_dir = tangent / tang_mag
            a.velocity = a.velocity - tang_dir * jt * inv_a
            b.velocity = b.velocity + tang_dir * jt * inv_b

    def _handle_pair(self, a: Body, b: Body) -> None:
        if not a.collides_with(b):
            return
        hit = self._find_contact(a, b)
        if hit is None:
            return
        normal, depth = hit
        if a.is_sensor or b.is_sensor:
            self.events.append({"type": "sensor", "a": a.label, "b": b.label,
                                "depth": float(depth)})
            return
        self._resolve_contact(a, b, normal, depth)

    # ──────────────────────────────────────────
    # Main Update Loop
    # ──────────────────────────────────────────
    def dynamic_bodies(self) -> List[Body]:
        return [b for b in self.bodies.values() if not b.is_static]

    def update(self, dt: float) -> None:
        """Advance the world by dt seconds."""
        self.events.clear()
        movers = self.dynamic_bodies()
        for body in movers:
            self._integrate(body, dt)

        self._solve_constraints()

        others = list(self.bodies.values())
        for a in movers:
            for b in others:
                if b.handle == a.handle:
                    continue
                # dynamic-dynamic pairs are visited once
                if not b.is_static and b.handle < a.handle:
                    continue
                self._handle_pair(a, b)

    def simulate(self, dt: float = 1.0 / 240.0, steps: int = 240) -> float:
        """Run a fixed number of steps. Returns elapsed time in seconds."""
        for _ in range(steps):
            self.update(dt)
        return dt * steps

    def body_by_label(self, label: str) -> Optional[Body]:
        return next((b for b in self.bodies.values() if b.label == label), None)
