#!/usr/bin/env python3
"""
Setup configuration for spotify-dl
Batch downloader for Spotify tracks, albums, playlists and episodes with per-folder sync
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "spotipy>=2.22.1",
    "librespot>=0.0.9",
    "mutagen>=1.47.0",
    "pydub>=0.25.1",
    "click>=8.1.7",
    "rich-click>=1.7.0",
    "rich>=13.7.0",
    "pyyaml>=6.0.1",
    "requests>=2.31.0",
    "tqdm>=4.66.1",
]

setup(
    name="spotify-dl",
    version="0.3.0",
    author="spotify-dl contributors",
    description="Download Spotify tracks, albums, playlists and episodes and keep folders in sync",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["spotify_dl", "spotify_dl.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "spotify-dl=spotify_dl.cli:main",
        ],
    },
    keywords="spotify music download playlist sync cli",
)
