"""
Remote Text setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="remote-text",
    version="0.3.0",
    description="Remote Text — versioned documents backed by one git repository each",
    packages=find_packages(include=["remote_text", "remote_text.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "remote-text=remote_text.cli:main",
        ],
    },
    install_requires=[
        "dulwich>=0.22",
        "pydantic>=2.5",
        "networkx>=3.2",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
)
