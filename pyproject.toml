[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "turnkit"
version = "0.1.0"
description = "Asyncio building blocks for TURN relays: allocations, permissions, channel bindings, client transactions and credentials"
requires-python = ">=3.10"
keywords = ["turn", "stun", "relay", "nat", "asyncio"]
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
    "Topic :: Internet",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["turnkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
