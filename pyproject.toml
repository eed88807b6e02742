[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tracemesh"
version = "0.1.0"
description = "Building blocks of a distributed tracing backend: trace splitting and rate limiting, query sharding, span ID deduplication, block reports and configuration checks."
requires-python = ">=3.10"
keywords = [
    "tracing",
    "distributed-tracing",
    "spans",
    "observability",
    "query-sharding",
    "rate-limiting",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "humanize",
    "tabulate",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
tracemesh = "tracemesh.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tracemesh"]

[tool.hatch.build.targets.sdist]
include = [
    "tracemesh",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
