[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "troupe"
version = "0.4.0"
description = "Asyncio actors with brokers, message buses, pub/sub, AMQP-style queues, schedulers and worker pools"
requires-python = ">=3.11"
dependencies = []
keywords = ["actor", "asyncio", "broker", "pubsub", "pool", "message-queue", "scheduler"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Framework :: AsyncIO",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["troupe"]

[tool.pytest.ini_options]
addopts = "-ra"
