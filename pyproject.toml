[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "graviola"
version = "0.1.0"
description = "Building blocks for a query proxy in front of Prometheus-compatible storages: configuration, time parsing, series, query tracking, metrics and a WSGI front end."
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "prometheus",
    "monitoring",
    "metrics",
    "proxy",
    "time-series",
    "wsgi",
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
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["graviola"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
