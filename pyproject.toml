[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tourwatch"
version = "0.1.0"
description = "Watch guided-tour booking calendars for newly opened dates, store them in SQLite and notify or serve a summary."
requires-python = ">=3.10"
keywords = ["tours", "availability", "booking", "notifications", "sqlite", "watcher"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Utilities",
]
dependencies = [
    "requests>=2.28",
    "flask>=2.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
tourwatch = "tourwatch.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tourwatch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
