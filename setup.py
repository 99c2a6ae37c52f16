"""Setup script for ridetrack package."""

from setuptools import setup, find_packages

setup(
    name="ride-tracking-engine",
    version="0.1.0",
    description="Live ride tracking: GPS distance, heading, OSRM routing with fallback and map viewport",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pyserial>=3.5",
        "requests>=2.31.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "ridetrack-replay=ridetrack.main:main",
        ],
    },
)
