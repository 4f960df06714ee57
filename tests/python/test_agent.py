from __future__ import annotations

import pytest
from pygame.math import Vector2

from flocking.sim.core.agent import Agent
from flocking.sim.core.rng import DeterministicRng
from flocking.sim.core.store import AgentStore


def test_agent_uses_slots_and_isolates_defaults():
    agent_a = Agent(id=0, position=Vector2(), velocity=Vector2())
    agent_b = Agent(id=1, position=Vector2(), velocity=Vector2())

    assert not hasattr(agent_a, "__dict__")
    assert hasattr(Agent, "__slots__")
    assert agent_a.acceleration is not agent_b.acceleration
    agent_a.acceleration.x = 2.0
    assert agent_b.acceleration.x == 0.0


def test_initialize_places_agents_inside_world():
    store = AgentStore(DeterministicRng(5))
    store.initialize(200, 300.0, 150.0)

    assert store.count == 200
    assert len(store.trails) == 200
    for index, agent in enumerate(store):
        assert agent.id == index
        assert store.agent_at(index) is agent
        assert 0.0 <= agent.position.x < 300.0
        assert 0.0 <= agent.position.y < 150.0
        assert -1.0 <= agent.velocity.x < 1.0
        assert -1.0 <= agent.velocity.y < 1.0
        assert agent.acceleration == Vector2()
        assert -30.0 <= agent.hue < 30.0
        assert len(store.trail_at(index)) == 0


def test_initialize_replaces_population_and_trails():
    store = AgentStore(DeterministicRng(5))
    store.initialize(10, 100.0, 100.0)
    store.trail_at(3).append((1.0, 2.0))
    old_agents = list(store.agents)

    store.initialize(4, 100.0, 100.0)

    assert len(store) == 4
    assert not any(agent is old for agent in store.agents for old in old_agents)
    assert [len(trail) for trail in store.trails] == [0, 0, 0, 0]


def test_zero_and_negative_population_are_empty():
    store = AgentStore(DeterministicRng(1))
    store.initialize(0, 100.0, 100.0)
    assert store.count == 0
    store.initialize(-5, 100.0, 100.0)
    assert store.count == 0
    assert store.trails == []


def test_same_seed_produces_same_population():
    store_a = AgentStore(DeterministicRng(99))
    store_b = AgentStore(DeterministicRng(99))
    store_a.initialize(25, 640.0, 480.0)
    store_b.initialize(25, 640.0, 480.0)

    assert [(a.position, a.velocity, a.hue) for a in store_a] == [(b.position, b.velocity, b.hue) for b in store_b]


def test_load_uses_fixed_arrays():
    store = AgentStore(DeterministicRng(1))
    store.load([(1.0, 2.0), (3.0, 4.0)], [(0.5, 0.0), (0.0, -0.5)])

    assert store.agent_at(1).position == Vector2(3.0, 4.0)
    assert store.agent_at(0).velocity == Vector2(0.5, 0.0)
    assert store.agent_at(0).hue == 0.0

    with pytest.raises(ValueError):
        store.load([(1.0, 2.0)], [])
