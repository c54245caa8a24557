[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "allocwatch"
version = "0.9.3"
description = "Track simulated memory blocks: sizes, allocation sites, reallocations, leaks and double frees."
requires-python = ">=3.10"
dependencies = []
keywords = ["memory", "allocation", "leak", "debugging", "tracking", "double-free", "alignment"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Debuggers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["allocwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
