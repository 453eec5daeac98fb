[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "siptester"
version = "0.1.0"
description = "Read SIP/RTP packet captures, extract INVITE SDP and RTP streams, and validate SIP test call settings"
requires-python = ">=3.10"
dependencies = []
keywords = ["sip", "rtp", "sdp", "pcap", "pcapng", "voip", "testing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Internet Phone",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["siptester"]

[tool.hatch.build.targets.sdist]
include = ["siptester", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
