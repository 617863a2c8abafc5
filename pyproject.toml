[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "abuildtools"
version = "3.15.0"
description = "Helper commands for building APK packages: tar checksumming, package splitting, source fetching, limited root access and temp cleanup"
requires-python = ">=3.10"
dependencies = []
keywords = ["apk", "packaging", "tar", "pax", "gzip", "distfiles", "build"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Packaging",
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
abuild-tar = "abuildtools.tar:main"
abuild-gzsplit = "abuildtools.gzsplit:main"
abuild-fetch = "abuildtools.fetch:main"
abuild-sudo = "abuildtools.sudo:main"
abuild-rmtemp = "abuildtools.rmtemp:main"

[tool.hatch.build.targets.wheel]
packages = ["abuildtools"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
