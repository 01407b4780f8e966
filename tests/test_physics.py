"""
Tests for the circle integrator, walls, contacts and the danger query.
"""

import pytest

from fruitmerge.game_core.config_loader import load_config
from fruitmerge.game_core.physics_world import FruitBody, PhysicsWorld


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def physics(config):
    return PhysicsWorld(config)


def body(x, y, radius=13.0, vx=0.0, vy=0.0, tier=0, uid="f"):
    return FruitBody(uid=uid, tier=tier, x=x, y=y, vx=vx, vy=vy, radius=radius, created_at=0.0)


class TestIntegration:
    """Test gravity and damping."""

    def test_gravity_then_damping(self, physics):
        fruit = body(200, 300)
        physics.integrate(fruit)

        assert fruit.vy == pytest.approx(0.45)
        assert fruit.y == pytest.approx(300.45)
        assert fruit.x == 200

    def test_horizontal_velocity_decays(self, physics):
        fruit = body(200, 300, vx=10.0)
        physics.integrate(fruit)

        assert fruit.vx == pytest.approx(9.0)
        assert fruit.x == pytest.approx(209.0)

    def test_terminal_velocity(self, physics):
        """Damping caps the fall speed at 9 * gravity."""
        fruit = body(200, 100)
        for _ in range(300):
            physics.integrate(fruit)
        assert fruit.vy == pytest.approx(4.5, abs=1e-6)


class TestWalls:
    """Test container clamping."""

    def test_left_wall(self, physics):
        fruit = body(5, 300, vx=-4.0)
        physics.resolve_walls(fruit)

        assert fruit.x == 13
        assert fruit.vx == pytest.approx(0.4)

    def test_right_wall(self, physics):
        fruit = body(395, 300, vx=4.0)
        physics.resolve_walls(fruit)

        assert fruit.x == 387
        assert fruit.vx == pytest.approx(-0.4)

    def test_floor(self, physics):
        fruit = body(200, 645, vy=6.0)
        physics.resolve_walls(fruit)

        assert fruit.y == 637
        assert fruit.vy == pytest.approx(-0.6)

    def test_fruit_settles_on_floor(self, physics):
        fruit = body(200, 80)
        for _ in range(500):
            physics.step_bodies([fruit])

        assert fruit.y == pytest.approx(637, abs=0.5)
        assert abs(fruit.vy) < 1.0


class TestContacts:
    """Test overlap detection and resolution."""

    def test_separated_pair(self, physics):
        a = body(100, 100)
        b = body(126, 100)
        assert physics.contact(a, b) is None

    def test_overlap_normal(self, physics):
        a = body(100, 100)
        b = body(110, 100)
        contact = physics.contact(a, b)

        assert contact.nx == pytest.approx(1.0)
        assert contact.ny == pytest.approx(0.0)
        assert contact.overlap == pytest.approx(16.0)

    def test_coincident_centres_still_overlap(self, physics):
        contact = physics.contact(body(100, 100), body(100, 100))
        assert contact is not None
        assert contact.overlap == pytest.approx(26.0)

    def test_push_apart_half_each(self, physics):
        a = body(100, 100)
        b = body(110, 100)
        physics.resolve_contact(a, b, physics.contact(a, b))

        assert a.x == pytest.approx(92.0)
        assert b.x == pytest.approx(118.0)
        assert physics.contact(a, b) is None

    def test_impulse_only_when_closing(self, physics):
        a = body(100, 100, vx=1.0)
        b = body(110, 100, vx=-1.0)
        physics.resolve_contact(a, b, physics.contact(a, b))

        assert a.vx == pytest.approx(0.8)
        assert b.vx == pytest.approx(-0.8)

    def test_no_impulse_when_separating(self, physics):
        a = body(100, 100, vx=-1.0)
        b = body(110, 100, vx=1.0)
        physics.resolve_contact(a, b, physics.contact(a, b))

        assert a.vx == -1.0
        assert b.vx == 1.0


class TestDanger:
    """Test the overflow danger query."""

    def test_resting_above_line(self, physics):
        assert physics.is_in_danger(body(200, 100, vy=0.0))

    def test_moving_fruit_not_in_danger(self, physics):
        assert not physics.is_in_danger(body(200, 100, vy=2.0))

    def test_below_line(self, physics):
        assert not physics.is_in_danger(body(200, 120))

    def test_fruits_in_danger(self, physics):
        fruits = [body(100, 90, uid="a"), body(300, 400, uid="b")]
        assert [f.uid for f in physics.fruits_in_danger(fruits)] == ["a"]
