[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pagedmem"
version = "0.1.0"
description = "Memory server for a teaching operating system: simple paging, a process instruction store and a length-prefixed TCP protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["paging", "memory", "operating-system", "simulator", "tcp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pagedmem = "pagedmem.server:main"

[tool.hatch.build.targets.wheel]
packages = ["pagedmem"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
