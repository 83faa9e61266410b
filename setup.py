#!/usr/bin/env python3
"""
Setup configuration for digquest-sync
Offline data layer and pre-upload image optimizer for the DigQuest client
"""

from setuptools import setup, find_packages

# Core requirements (always installed)
core_requirements = [
    "Pillow>=10.0.0",
    "click>=8.1.7",
    "rich-click>=1.7.0",
    "pyyaml>=6.0.1",
    "requests>=2.31.0",
    "tqdm>=4.66.1",
    "python-dotenv>=1.0.0",
]

setup(
    name="digquest-sync",
    version="0.1.0",
    author="DigQuest Team",
    description="Offline storage, server reconciliation and image optimization for the DigQuest client",
    long_description=__doc__,
    long_description_content_type="text/plain",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Multimedia :: Graphics",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "digquest-sync=digquest_sync.cli:main",
        ],
    },
    keywords="digquest offline cache sync localstorage image optimization cli",
)
