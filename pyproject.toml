[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "candystore"
version = "0.5.4"
description = "Sharded hash-table key-value store pieces: parted hashing, lists and queues over a raw key-value layer, a minimal file-backed store and a shard-fill simulator"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "database", "store", "hash-table", "siphash", "queue", "list"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
candystore-mini = "candystore.ministore:main"
candystore-simulator = "candystore.simulator:main"

[tool.hatch.build.targets.wheel]
packages = ["candystore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
