#!/usr/bin/env python3
"""Track a circling target with interleaved lidar and radar.

Optionally generates a matplotlib plot if matplotlib is installed.

Usage:
    python turning_target.py              # text output only
    python turning_target.py --plot       # with matplotlib visualization
    python turning_target.py --duration 40 --no-radar
"""

import argparse
import logging
import math

import numpy as np

from fusionukf import Measurement, UnscentedKalmanFilter, normalize_angle

# ---------------------------------------------------------------------------
# Target motion
# ---------------------------------------------------------------------------


def ctrv_step(state, dt):
    """Exact constant turn rate and velocity motion."""
    px, py, v, yaw, yawd = state
    if abs(yawd) > 1e-9:
        px += v / yawd * (math.sin(yaw + yawd * dt) - math.sin(yaw))
        py += v / yawd * (math.cos(yaw) - math.cos(yaw + yawd * dt))
    else:
        px += v * dt * math.cos(yaw)
        py += v * dt * math.sin(yaw)
    return px, py, v, yaw + yawd * dt, yawd


def sense(state, timestamp, lidar, rng):
    px, py, v, yaw, _ = state
    if lidar:
        return Measurement.lidar(
            px + rng.normal(0, 0.15), py + rng.normal(0, 0.15), timestamp
        )
    rho = math.hypot(px, py)
    return Measurement.radar(
        rho + rng.normal(0, 0.3),
        math.atan2(py, px) + rng.normal(0, 0.03),
        (px * v * math.cos(yaw) + py * v * math.sin(yaw)) / rho + rng.normal(0, 0.3),
        timestamp,
    )


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


def run(duration=20.0, dt=0.05, speed=3.0, turn_rate=0.5,
        use_lidar=True, use_radar=True, plot=False):
    rng = np.random.default_rng(42)
    n_steps = int(duration / dt)

    ukf = UnscentedKalmanFilter(use_lidar=use_lidar, use_radar=use_radar)
    state = (10.0, 0.0, speed, 0.2, turn_rate)
    t0 = 1477010443000000

    # Storage
    time_arr = np.zeros(n_steps)
    true_pos = np.zeros((n_steps, 2))
    est_pos = np.zeros((n_steps, 2))
    pos_sigma = np.zeros(n_steps)
    heading_err = np.zeros(n_steps)
    nis = {"lidar": [], "radar": []}

    for step in range(n_steps):
        if step > 0:
            state = ctrv_step(state, dt)
        time_arr[step] = step * dt

        lidar = step % 2 == 0
        meas = sense(state, t0 + int(round(step * dt * 1e6)), lidar, rng)
        ukf.process_measurement(meas)

        x = ukf.x
        true_pos[step] = state[:2]
        est_pos[step] = x[:2]
        pos_sigma[step] = math.sqrt(ukf.P[0, 0] + ukf.P[1, 1])
        heading_err[step] = abs(normalize_angle(x[3] - state[3]))

        if step > 0:
            value = ukf.nis_lidar if lidar else ukf.nis_radar
            if value is not None:
                nis["lidar" if lidar else "radar"].append(value)

        if step % (n_steps // 10) == 0:
            print(f"  {step * 100 // n_steps:3d}%  "
                  f"t={time_arr[step]:.2f}  "
                  f"true=({state[0]:6.2f}, {state[1]:6.2f})  "
                  f"est=({x[0]:6.2f}, {x[1]:6.2f})  v={x[2]:.2f}  yaw={x[3]:+.3f}")

    # Final statistics
    skip = n_steps // 10
    errors = np.linalg.norm(est_pos[skip:] - true_pos[skip:], axis=1)
    print(f"\nResults (after convergence):")
    print(f"  Position RMSE: {np.sqrt(np.mean(errors ** 2)):.4f} m")
    print(f"  Heading mean error: {np.degrees(np.mean(heading_err[skip:])):.2f} deg")
    for sensor, values in nis.items():
        if values:
            print(f"  Mean {sensor} NIS: {np.mean(values):.3f}")
    print(f"  Final P trace: {np.trace(ukf.P):.6f}")

    if plot:
        _plot(time_arr, true_pos, est_pos, pos_sigma, heading_err)


def _plot(time_arr, true_pos, est_pos, pos_sigma, heading_err):
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        print("\nInstall matplotlib for plotting: pip install matplotlib")
        return

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))

    # Trajectory plot
    ax1.plot(true_pos[:, 0], true_pos[:, 1], "g-", alpha=0.8, label="True path")
    ax1.plot(est_pos[:, 0], est_pos[:, 1], "b-", lw=1.5, label="UKF estimate")
    ax1.scatter([0.0], [0.0], c="k", marker="^", label="Sensors")
    ax1.set_xlabel("x (m)")
    ax1.set_ylabel("y (m)")
    ax1.set_title("Circling Target")
    ax1.axis("equal")
    ax1.legend(loc="upper right")
    ax1.grid(True, alpha=0.3)

    # Error plot
    error = np.linalg.norm(est_pos - true_pos, axis=1)
    ax2.plot(time_arr, error, "r-", alpha=0.7, label="Position error (m)")
    ax2.plot(time_arr, pos_sigma, "b--", alpha=0.7, label=r"$1\sigma$ position")
    ax2.plot(time_arr, heading_err, "m-", alpha=0.5, label="Heading error (rad)")
    ax2.set_xlabel("Time (s)")
    ax2.set_title("Tracking Error")
    ax2.set_ylim(0, 1.0)
    ax2.legend(loc="upper right")
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig("turning_target.svg", dpi=150)
    print("\nSaved: turning_target.svg")
    plt.show()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Circling target tracking with a fusion UKF")
    parser.add_argument("--duration", type=float, default=20.0)
    parser.add_argument("--speed", type=float, default=3.0)
    parser.add_argument("--turn-rate", type=float, default=0.5)
    parser.add_argument("--no-lidar", action="store_true")
    parser.add_argument("--no-radar", action="store_true")
    parser.add_argument("--plot", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    print("Circling Target Tracking with UKF (lidar + radar)")
    print("=" * 50)
    run(duration=args.duration, speed=args.speed, turn_rate=args.turn_rate,
        use_lidar=not args.no_lidar, use_radar=not args.no_radar, plot=args.plot)
