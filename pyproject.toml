[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cvocd"
version = "0.1.0"
description = "Software model of a four-CV, twelve-gate MIDI-to-CV converter: MIDI parsing, note stacks, gate and CV outputs, NRPN configuration and patch storage"
requires-python = ">=3.10"
dependencies = []
keywords = ["midi", "cv", "gate", "modular", "synthesizer", "nrpn", "sysex"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Multimedia :: Sound/Audio :: MIDI",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cvocd = "cvocd.device:main"

[tool.hatch.build.targets.wheel]
packages = ["cvocd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
