"""
Server Tests — frame/init messages, key handling and live physics params.
Exercises the module-level helpers directly; no event loop is started.
"""

import sys
import os
import json
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import physics
import server
from controller import GameState


@pytest.fixture(autouse=True)
def fresh_server_state():
    server.held_keys.clear()
    server._reset_params()
    server.ctrl.set_layout("reference")
    server.ctrl.pending_events.clear()
    yield
    server.held_keys.clear()
    server._reset_params()
    server.ctrl.set_layout("reference")
    server.ctrl.pending_events.clear()


class TestFrameMessage:

    def test_frame_shape(self):
        frame = json.loads(server._build_frame_message())
        assert frame["type"] == "frame"
        assert frame["pins"] == [[200.0, 300.0], [600.0, 300.0]]
        assert frame["platform"]["center"] == [400.0, 300.0]
        assert frame["platform"]["length"] == 400.0
        assert frame["ball"]["visible"] is True
        assert "angle_exact" not in frame["readout"]
        assert frame["readout"]["angle"] == 0
        assert 0.0 <= frame["readout"]["overlap"] <= 1.0

    def test_events_drained_once(self):
        server.ctrl.reset()
        first = json.loads(server._build_frame_message())
        assert [e["type"] for e in first["events"]] == ["restart", "spawn_world"]
        second = json.loads(server._build_frame_message())
        assert second["events"] == []

    def test_spawn_world_carries_hazards(self):
        server.ctrl.set_layout("classic")
        frame = json.loads(server._build_frame_message())
        spawn = [e for e in frame["events"] if e["type"] == "spawn_world"][0]
        assert spawn["layout"] == "classic"
        assert [h["pos"] for h in spawn["hazards"]] == [
            [300.0, 200.0], [500.0, 200.0], [400.0, 400.0]]

    def test_loss_in_frame(self):
        ctrl = server.ctrl
        hx, hy = ctrl.world.hazards[0].position
        ctrl.world.physics.set_position(ctrl.world.ball.body, (hx, hy))
        ctrl.world.physics.set_velocity(ctrl.world.ball.body, (0.0, 0.0))
        ctrl.tick()
        frame = json.loads(server._build_frame_message())
        lost = [e for e in frame["events"] if e["type"] == "ball_lost"]
        assert len(lost) == 1 and lost[0]["hazard"] == 0
        assert frame["ball"]["visible"] is False
        assert frame["readout"]["game_over"] is True
        assert frame["status"].startswith("GAME OVER")


class TestInitMessage:

    def test_init_fields(self):
        msg = json.loads(server._build_init_message())
        assert msg["type"] == "init"
        assert (msg["width"], msg["height"]) == (800, 600)
        assert msg["walls"] == [[200.0, 300.0], [600.0, 300.0]]
        assert msg["layout"] == "reference"
        assert len(msg["hazards"]) == 25
        assert msg["hazard_radius"] == 14.0


class TestKeys:

    def test_held_keys_drive_pins(self):
        server._handle_key_down("w")
        server.ctrl.tick(server.InputState.from_keys(server.held_keys))
        assert server.ctrl.world.left_pin.y == 299.0
        server._handle_key_up("w")
        assert server.held_keys["w"] is False
        server.ctrl.tick(server.InputState.from_keys(server.held_keys))
        assert server.ctrl.world.left_pin.y == 299.0

    def test_escape_restarts_after_loss(self):
        ctrl = server.ctrl
        ctrl.world.state = GameState.GAME_OVER
        server._handle_key_down("escape")
        assert ctrl.state == GameState.PLAYING
        assert any(e["type"] == "restart" for e in ctrl.pending_events)

    def test_number_key_switches_layout(self):
        server._handle_key_down("2")
        assert server.ctrl.layout == "classic"
        assert len(server.ctrl.world.hazards) == 3

    def test_unbound_key_is_only_recorded(self):
        world = server.ctrl.world
        server._handle_key_down("q")
        assert server.ctrl.world is world
        assert server.held_keys["q"] is True


class TestParams:

    def test_params_listing(self):
        data = server._get_params_data()
        assert [p["attr"] for p in data] == [a for a, *_ in server.PHYSICS_PARAMS]
        gravity = data[0]
        assert gravity["value"] == pytest.approx(physics.GRAVITY)

    def test_adjust_steps_and_fine(self):
        start = physics.GRAVITY
        assert server._adjust_param(0, +1) == pytest.approx(start + 50.0)
        assert server._adjust_param(0, -1, fine=True) == pytest.approx(start + 45.0)
        assert physics.GRAVITY == pytest.approx(start + 45.0)

    def test_adjust_clamps_to_range(self):
        for _ in range(200):
            server._adjust_param(4, -1)
        assert physics.CONTACT_SLOP == 0.0

    def test_bad_index(self):
        assert server._adjust_param(99, 1) is None
        assert server._adjust_param(-1, 1) is None

    def test_reset_restores_defaults(self):
        server._adjust_param(0, 1)
        server._adjust_param(1, 1)
        server._reset_params()
        for attr, default in server.PARAM_DEFAULTS.items():
            assert getattr(physics, attr) == default
