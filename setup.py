"""
Setup script for the YouTube Transcript Pipeline
"""

from setuptools import setup, find_packages


def read_requirements(path):
    with open(path) as f:
        requirements = f.read().splitlines()
    # Remove comments and empty lines
    return [r for r in requirements if r and not r.startswith("#")]


setup(
    name="yt-transcript-pipeline",
    version="1.0.0",
    description="Time-aligned YouTube transcripts: authored captions first, speech recognition as fallback",
    author="Your Name",
    packages=find_packages(include=["config", "core", "workers", "api"]),
    py_modules=["cli"],
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "test": read_requirements("requirements-test.txt"),
    },
    entry_points={
        "console_scripts": [
            "yt-transcript=cli:cli",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
