[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pfs3"
version = "0.1.3"
description = "Read, inspect and format PFS3 (Professional File System III) Amiga disk images"
requires-python = ">=3.10"
dependencies = []
keywords = ["amiga", "pfs3", "filesystem", "disk-image", "rdb", "hdf"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pfs3"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
