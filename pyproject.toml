[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "avd"
version = "0.1.0"
description = "Configuration, route sniffing and connection relaying for an audio/video streaming daemon (RTMP, RTSP, MPEG-TS)"
requires-python = ">=3.10"
keywords = ["rtmp", "rtsp", "mpegts", "streaming", "video", "proxy", "configuration"]
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
    "Topic :: Multimedia :: Video",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["avd"]

[tool.hatch.build.targets.sdist]
include = ["avd", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
