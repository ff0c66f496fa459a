"""Setup configuration for reminderq."""

from setuptools import setup, find_packages

setup(
    name="reminderq",
    version="1.0.0",
    description="Interview reminder scheduler with a durable retrying job queue",
    author="Your Name",
    packages=find_packages(include=["reminderq", "reminderq.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "jinja2>=3.1",
        "tzdata; platform_system == 'Windows'",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "reminderq=reminderq.cli:cli",
        ],
    },
    python_requires=">=3.9",
)
