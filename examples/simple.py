#!/usr/bin/env python3
"""Minimal fusion UKF example: a target driving straight past the sensors."""

import logging
import math

import numpy as np

from fusionukf import Measurement, UnscentedKalmanFilter

logging.basicConfig(level=logging.INFO)

# Create filter with the default noise model
ukf = UnscentedKalmanFilter()

# Target drives along y = 2 at 3 m/s; lidar and radar alternate every 50 ms
rng = np.random.default_rng(42)
speed = 3.0
dt = 0.05
t0 = 1477010443000000

for k in range(100):
    px, py = -5.0 + speed * k * dt, 2.0
    timestamp = t0 + k * 50000

    if k % 2 == 0:
        meas = Measurement.lidar(px + rng.normal(0, 0.15), py + rng.normal(0, 0.15), timestamp)
    else:
        rho = math.hypot(px, py)
        meas = Measurement.radar(
            rho + rng.normal(0, 0.3),
            math.atan2(py, px) + rng.normal(0, 0.03),
            px * speed / rho + rng.normal(0, 0.3),
            timestamp,
        )

    ukf.process_measurement(meas)
    x = ukf.x

    print(
        f"t={k * dt:5.2f}  {meas.sensor_type.value:5s}  "
        f"true=({px:6.2f}, {py:5.2f})  "
        f"est=({x[0]:6.2f}, {x[1]:5.2f})  "
        f"v={x[2]:5.2f}  yaw={x[3]:6.3f}"
    )
