[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xoprovider"
version = "0.1.0"
description = "Declarative management of Xen Orchestra virtual machines: schema, validation, state tracking and reconciliation"
requires-python = ">=3.10"
dependencies = []
keywords = ["xen", "xen-orchestra", "xcp-ng", "virtualization", "infrastructure-as-code", "vm"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["xoprovider"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
