[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "parquetgw"
version = "0.1.0"
description = "Query layer over time-partitioned, sharded series blocks: quotas, label queries, series selection and merging."
requires-python = ">=3.10"
dependencies = []
keywords = ["time series", "query", "blocks", "shards", "labels", "series"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["parquetgw"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
