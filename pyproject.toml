[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "taskmaster"
version = "0.1.0"
description = "A small process supervisor: a daemon that runs and restarts programs, and an interactive control shell"
requires-python = ">=3.11"
dependencies = []
keywords = ["supervisor", "process", "daemon", "job control", "unix socket"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
taskmasterd = "taskmaster.daemon:main"
taskmasterctl = "taskmaster.client:main"

[tool.hatch.build.targets.wheel]
packages = ["taskmaster"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
