[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "labkit"
version = "0.1.0"
description = "Malloc trace driver with a simulated heap and function timers, plus robust descriptor I/O, socket helpers and a CGI adder"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "malloc",
    "allocator",
    "trace",
    "benchmark",
    "heap",
    "cgi",
    "robust-io",
    "sockets",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
labkit-mdriver = "labkit.driver:main"
labkit-adder = "labkit.adder:main"

[tool.hatch.build.targets.wheel]
packages = ["labkit"]

[tool.pytest.ini_options]
addopts = "-ra"
