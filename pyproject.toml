[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pathmpc"
version = "0.1.0"
description = "Model predictive path tracking for a kinematic bicycle model"
requires-python = ">=3.10"
keywords = ["mpc", "model predictive control", "path tracking", "vehicle", "control"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["pathmpc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
