[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sablier"
version = "1.0.0"
description = "Start workloads on demand and stop them again after a period of inactivity"
requires-python = ">=3.10"
keywords = [
    "scale-to-zero",
    "on-demand",
    "docker",
    "swarm",
    "kubernetes",
    "sessions",
    "http",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "flask",
    "jinja2",
    "humanize",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sablier"]

[tool.pytest.ini_options]
addopts = "-ra"
