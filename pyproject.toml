[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vise"
version = "0.1.0"
description = "Declarative metric groups with counters, gauges, histograms and families, encoded in OpenMetrics and Prometheus text formats"
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "prometheus", "openmetrics", "monitoring", "histogram", "gauge", "counter"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vise"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
