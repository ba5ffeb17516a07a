[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trunk"
version = "0.1.0"
description = "Version checks, file watching, live-reload messaging, archive extraction and static serving helpers for web asset builds"
requires-python = ">=3.10"
dependencies = [
    "platformdirs",
]
keywords = [
    "build",
    "web",
    "live-reload",
    "file-watching",
    "static-files",
    "semver",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["trunk"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
