"""
Robertson's chemical kinetics, as a stiff ODE and as an index-1 DAE.

    y1' = -k1 y1 + k3 y2 y3
    y2' =  k1 y1 - k2 y2^2 - k3 y2 y3
    y3' =  k2 y2^2              (ODE form)
    0   =  y1 + y2 + y3 - 1     (DAE form)
"""

import argparse
import logging
import time

import jax
import jax.numpy as jnp

import jax_stiff

jax.config.update("jax_enable_x64", True)

RATES = (0.04, 3e7, 1e4)


def rober(u, p, t):
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        -k1 * y1 + k3 * y2 * y3,
        k1 * y1 - k2 * y2**2 - k3 * y2 * y3,
        k2 * y2**2,
    ])


def rober_jac(u, p, t):
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        [-k1, k3 * y3, k3 * y2],
        [k1, -2.0 * k2 * y2 - k3 * y3, -k3 * y2],
        [0.0, 2.0 * k2 * y2, 0.0],
    ])


def rober_dae(u, p, t):
    k1, k2, k3 = p
    y1, y2, y3 = u
    return jnp.array([
        -k1 * y1 + k3 * y2 * y3,
        k1 * y1 - k2 * y2**2 - k3 * y2 * y3,
        y1 + y2 + y3 - 1.0,
    ])


def main(t1=1e5, rtol=1e-8, atol=1e-10):
    u0 = jnp.array([1.0, 0.0, 0.0])
    config = jax_stiff.IntegratorConfig(rtol=rtol, atol=atol)

    strategies = {
        "analytic": (jax_stiff.ODEProblem(rober, u0, (0.0, t1), p=RATES, jac=rober_jac), None),
        "finite differences": (jax_stiff.ODEProblem(rober, u0, (0.0, t1), p=RATES), None),
        "autodiff": (jax_stiff.ODEProblem(rober, u0, (0.0, t1), p=RATES), jax_stiff.AutoDiff()),
    }

    for name, (problem, jacobian) in strategies.items():
        start = time.perf_counter()
        sol = jax_stiff.solve_ivp(problem, jacobian=jacobian, config=config)
        elapsed = time.perf_counter() - start
        stats = sol.stats
        print(
            f"{name:>20s}: u(t1) = {sol.u[-1]}, {stats.naccept} steps, "
            f"{stats.njev} Jacobians, {stats.nfactor} factorizations ({elapsed:.2f}s)"
        )

    dae = jax_stiff.ODEProblem(
        rober_dae, u0, (0.0, t1), p=RATES,
        mass=jnp.diag(jnp.array([1.0, 1.0, 0.0])),
    )
    sol = jax_stiff.solve_ivp(dae, config=config)
    drift = jnp.max(jnp.abs(sol.u.sum(axis=1) - 1.0))
    print(f"{'DAE':>20s}: u(t1) = {sol.u[-1]}, max constraint violation {drift:.2e}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--t1", type=float, default=1e5)
    parser.add_argument("--rtol", type=float, default=1e-8)
    parser.add_argument("--atol", type=float, default=1e-10)
    parser.add_argument("--debug", action="store_true", help="log step rejections")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    main(args.t1, args.rtol, args.atol)
