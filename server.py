"""
Balance Platform Web Server — Layer 3 replacement (FastAPI + WebSocket)

Serves the canvas frontend and runs the game loop,
streaming board state to browser clients over WebSocket.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import (
    BalanceController, InputState,
    BALL_RADIUS, HAZARD_RADIUS, PIN_RADIUS, PLATFORM_THICKNESS, WALL_THICKNESS,
)
from hazard_layouts import LAYOUT_KEYS
from physics import WORLD_WIDTH, WORLD_HEIGHT
import physics as _phys

STATIC_DIR = Path(__file__).parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = BalanceController()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client / input state ────────────────────────────────────────────────────

clients: list[WebSocket] = []
held_keys: dict[str, bool] = {}

# Contacts slower than this (px/s) make no sound
SOUND_MIN_SPEED = 40.0

# ── Physics params (live-editable module constants) ─────────────────────────

PHYSICS_PARAMS = [
    ("GRAVITY",            "Gravity",        100.0, 3000.0, 50.0),
    ("AIR_FRICTION_SCALE", "Air Frict.",       0.0,   20.0,  0.5),
    ("FRICTION_SCALE",     "Contact Frict.",   0.0,  200.0,  5.0),
    ("RESTITUTION_SCALE",  "Bounce",           0.0,  500.0, 10.0),
    ("CONTACT_SLOP",       "Slop",             0.0,    1.0,  0.01),
]

PARAM_DEFAULTS = {attr: getattr(_phys, attr) for attr, *_ in PHYSICS_PARAMS}

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main game loop running at ~60 fps."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        # Clamp dt to avoid spiral-of-death
        if dt > 0.05:
            dt = 0.05

        # 1. Tick (restart is edge-triggered in _handle_key_down, never held)
        inputs = InputState.from_keys(held_keys)
        inputs.restart = False
        ctrl.tick(inputs, dt)

        # 2. Build frame message and broadcast
        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
        else:
            ctrl.pending_events.clear()

        # Sleep to maintain target FPS
        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _xy(vec) -> list:
    return [round(float(vec[0]), 3), round(float(vec[1]), 3)]


def _hazards_data() -> list:
    return [{"index": h.index, "pos": _xy(h.position), "radius": h.radius}
            for h in ctrl.world.hazards]


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    world = ctrl.world
    platform = world.platform
    ball = world.ball

    # Drain pending events
    events = []
    for ev in ctrl.pending_events:
        if ev.get("type") == "spawn_world":
            events.append({**ev, "hazards": _hazards_data()})
        else:
            events.append(ev)
    ctrl.pending_events.clear()

    # Contact sounds
    sounds = []
    for ev in ctrl.physics_events:
        if ev.get("type") == "contact" and ev.get("speed", 0.0) >= SOUND_MIN_SPEED:
            sounds.append({"type": "contact", "speed": round(float(ev["speed"]), 1)})

    readout = ctrl.readout()
    readout.pop("angle_exact", None)
    readout["overlap"] = round(ctrl.max_overlap(), 3)

    frame = {
        "type": "frame",
        "pins": [_xy(world.left_pin.position), _xy(world.right_pin.position)],
        "platform": {
            "center": _xy(platform.center),
            "length": round(platform.length, 3),
            "angle": round(platform.angle, 5),
        },
        "ball": {"pos": _xy(ball.position), "visible": ball.visible},
        "readout": readout,
        "events": events,
        "sounds": sounds,
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    return json.dumps({
        "type": "init",
        "width": WORLD_WIDTH,
        "height": WORLD_HEIGHT,
        "ball_radius": BALL_RADIUS,
        "hazard_radius": HAZARD_RADIUS,
        "pin_radius": PIN_RADIUS,
        "platform_thickness": PLATFORM_THICKNESS,
        "wall_thickness": WALL_THICKNESS,
        "walls": [_xy(w.position) for w in ctrl.world.walls],
        "layout": ctrl.layout,
        "hazards": _hazards_data(),
    })


# ── Key press handlers ──────────────────────────────────────────────────────

def _handle_key_down(key: str):
    """Handle a key press event from the client."""
    held_keys[key] = True

    if key == "escape":
        ctrl.reset()
    elif key in LAYOUT_KEYS:
        ctrl.set_layout(LAYOUT_KEYS[key])


def _handle_key_up(key: str):
    """Handle a key release event from the client."""
    held_keys[key] = False


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all physics params with current values."""
    result = []
    for attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(getattr(_phys, attr), 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(idx: int, direction: int, fine: bool = False):
    """Nudge one param by its step; returns the new value or None."""
    if not 0 <= idx < len(PHYSICS_PARAMS):
        return None
    attr, label, mn, mx, step = PHYSICS_PARAMS[idx]
    s = step / 10.0 if fine else step
    cur = getattr(_phys, attr)
    new_val = max(mn, min(mx, cur + direction * s))
    setattr(_phys, attr, new_val)
    return new_val


def _reset_params():
    for attr, dflt in PARAM_DEFAULTS.items():
        setattr(_phys, attr, dflt)


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[SRV] client connected ({len(clients)} total)")

    await ws.send_text(_build_init_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue

            cmd = msg.get("cmd", "")
            if cmd == "key_down":
                _handle_key_down(msg.get("key", ""))
            elif cmd == "key_up":
                _handle_key_up(msg.get("key", ""))
            elif cmd == "layout":
                try:
                    ctrl.set_layout(msg.get("name", ""))
                except KeyError as exc:
                    await ws.send_text(json.dumps({"type": "error", "msg": str(exc)}))
            elif cmd == "get_params":
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
            elif cmd == "adjust_param":
                idx = int(msg.get("index", 0))
                new_val = _adjust_param(idx, int(msg.get("direction", 0)),
                                        bool(msg.get("fine", False)))
                if new_val is not None:
                    await ws.send_text(json.dumps({
                        "type": "param_update",
                        "index": idx,
                        "value": round(new_val, 6),
                    }))
            elif cmd == "reset_params":
                _reset_params()
                await ws.send_text(json.dumps({
                    "type": "params",
                    "data": _get_params_data(),
                }))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        held_keys.clear()
        print(f"[SRV] client disconnected ({len(clients)} left)")


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
