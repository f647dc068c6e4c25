[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "packguard"
version = "0.1.0"
description = "Battery management system logic: protection state machine, state of charge, LEDs, display screens and configuration objects"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "bms",
    "battery",
    "battery-management",
    "lithium-ion",
    "state-of-charge",
    "lfp",
    "nmc",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Electronic Design Automation (EDA)",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["packguard"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
