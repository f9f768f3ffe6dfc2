#!/usr/bin/env python3
"""Setup script for the fusionukf Python package.

Reads the version from ``fusionukf/version.py`` without importing the
package, so numpy need not be installed at build time.
"""

import os
import re

from setuptools import find_packages, setup


def _here():
    return os.path.dirname(os.path.abspath(__file__))


def _version():
    with open(os.path.join(_here(), "fusionukf", "version.py"), encoding="utf-8") as f:
        match = re.search(r'^__version__ = "([^"]+)"', f.read(), re.MULTILINE)
    if match is None:
        raise RuntimeError("unable to find __version__ in fusionukf/version.py")
    return match.group(1)


setup(
    name="fusionukf",
    version=_version(),
    description=(
        "Unscented Kalman Filter fusing lidar and radar to track "
        "a target's position, speed and heading"
    ),
    packages=find_packages(include=["fusionukf", "fusionukf.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.21",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
        "plot": ["matplotlib>=3.4"],
    },
    keywords=["kalman-filter", "ukf", "state-estimation", "sensor-fusion", "radar", "lidar"],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering",
    ],
)
