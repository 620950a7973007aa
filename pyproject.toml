[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nabu"
version = "0.1.0"
description = "Building blocks for an obfuscating tunnel: frame crypto, Salamander UDP obfuscation, Reed-Solomon FEC, secure-DNS and client/relay configuration, and an adaptive traffic governor."
requires-python = ">=3.10"
dependencies = [
    "cryptography",
    "pyyaml",
]
keywords = [
    "tunnel",
    "proxy",
    "relay",
    "obfuscation",
    "aes-gcm",
    "x25519",
    "hkdf",
    "reed-solomon",
    "fec",
    "dns-over-https",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["nabu"]

[tool.hatch.build.targets.sdist]
include = [
    "nabu",
    "tests",
    "pyproject.toml",
    "README.md",
]

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
