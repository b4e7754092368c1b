[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mrwordcount"
version = "0.1.0"
description = "A small distributed MapReduce word counter with a master, workers and a JSON progress endpoint"
requires-python = ">=3.10"
dependencies = []
keywords = ["mapreduce", "word count", "distributed", "rpc"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mrwordcount = "mrwordcount.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mrwordcount"]

[tool.pytest.ini_options]
addopts = "-ra"
