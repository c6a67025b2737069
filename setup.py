from setuptools import setup, find_packages

setup(
    name="roadsurp-tools",
    version="0.1.0",
    description="Road surface anomaly detection (speed breakers, potholes, broken patches) from phone sensors",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.11",
    install_requires=[
        "numpy>=1.24,<2.0",
        "pandas>=2.0,<3.0",
        "matplotlib>=3.7,<4.0",
        "tqdm>=4.65",
        "zstandard>=0.21",
        "structlog>=24.1",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    entry_points={
        "console_scripts": [
            "roadsurp-replay=roadsurp_tools.replay_recording:main",
            "roadsurp-simulate=roadsurp_tools.simulate_drive:main",
            "roadsurp-visualize=roadsurp_tools.visualize_events:main",
        ],
    },
)
