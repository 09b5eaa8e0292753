[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "parlor-room"
version = "0.1.0"
description = "Matchmaking building blocks: Weng-Lin ratings, rating storage, Prometheus metrics and health endpoints"
requires-python = ">=3.10"
keywords = [
    "matchmaking",
    "mmr",
    "rating",
    "weng-lin",
    "openskill",
    "lobby",
    "metrics",
    "prometheus",
    "health-check",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Games/Entertainment",
    "Typing :: Typed",
]
dependencies = [
    "starlette",
    "uvicorn",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "httpx",
]

[tool.hatch.build.targets.wheel]
packages = ["parlor_room"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
