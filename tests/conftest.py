"""Shared fixtures: double precision and the Robertson kinetics problem."""

import jax

jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp
import numpy as np
import pytest


ROBER_RATES = (0.04, 3e7, 1e4)


def rober(u, p, t):
    """Robertson chemical kinetics."""
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        -k1 * y1 + k3 * y2 * y3,
        k1 * y1 - k2 * y2**2 - k3 * y2 * y3,
        k2 * y2**2,
    ])


def rober_jac(u, p, t):
    """Analytic Jacobian of the Robertson system."""
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        [-k1, k3 * y3, k3 * y2],
        [k1, -2.0 * k2 * y2 - k3 * y3, -k3 * y2],
        [0.0, 2.0 * k2 * y2, 0.0],
    ])


def rober_dae(u, p, t):
    """Robertson kinetics with the conservation law as algebraic equation."""
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        -k1 * y1 + k3 * y2 * y3,
        k1 * y1 - k2 * y2**2 - k3 * y2 * y3,
        y1 + y2 + y3 - 1.0,
    ])


ROBER_PATTERN = np.array([
    [1, 1, 1],
    [1, 1, 1],
    [0, 1, 0],
], dtype=bool)


@pytest.fixture
def rober_setup():
    """
    Robertson problem: k = (0.04, 3e7, 1e4), u0 = (1, 0, 0).

    Returns (f, jac, u0, p).
    """
    u0 = jnp.array([1.0, 0.0, 0.0])
    return rober, rober_jac, u0, ROBER_RATES


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
