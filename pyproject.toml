[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "listener"
version = "2.0.0"
description = "Watch an audio input and record to files whenever sound is detected"
requires-python = ">=3.10"
dependencies = []
keywords = ["audio", "recording", "sound detection", "voice activation", "pulseaudio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Console :: Curses",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Capture/Recording",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
listener = "listener.cli:main"
setlistener = "listener.setup_ui:main"

[tool.hatch.build.targets.wheel]
packages = ["listener"]

[tool.pytest.ini_options]
addopts = "-ra"
