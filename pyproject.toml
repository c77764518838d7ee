[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shasper"
version = "0.1.0"
description = "Beacon chain node building blocks: wire messages, RPC codecs and state machines, LMD-GHOST fork choice and attestation pooling"
requires-python = ">=3.10"
keywords = [
    "beacon-chain",
    "blockchain",
    "lmd-ghost",
    "fork-choice",
    "ssz",
    "rpc",
    "attestations",
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
    "Topic :: System :: Distributed Computing",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["shasper"]

[tool.hatch.build.targets.sdist]
include = [
    "shasper",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
addopts = "-ra"
