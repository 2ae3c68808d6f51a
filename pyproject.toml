[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sfrl"
version = "0.1.0"
description = "Small multi-actor reinforcement learning toolkit with a NumPy PPO trainer and a tic-tac-toe environment"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["reinforcement-learning", "ppo", "multi-agent", "tic-tac-toe", "numpy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sfrl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
