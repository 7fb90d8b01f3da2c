[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simplecov"
version = "0.1.0"
description = "Basic-block edge coverage for C and C++ programs: a clang wrapper that instruments textual LLVM IR, and a monitor that reports covered branches"
requires-python = ">=3.10"
dependencies = []
keywords = ["coverage", "llvm", "clang", "instrumentation", "testing"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
simplecov-cc = "simplecov.driver:main"
simplecov-monitor = "simplecov.monitor:main"

[tool.hatch.build.targets.wheel]
packages = ["simplecov"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
