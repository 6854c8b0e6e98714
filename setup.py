#!/usr/bin/env python
# encoding: UTF-8

import os

from setuptools import setup


long_description = ""
if os.path.isfile("README.rst"):
    long_description = open("README.rst", "r", encoding="UTF-8").read()


setup(
    name="gemtext2md",
    version="0.1.0",
    description="Converts Gemtext (Gemini markup format) to Markdown",
    license="Apache-2.0",
    long_description=long_description,
    keywords="gemtext gmi gemini markdown commonmark convert",
    py_modules=["gemtext2md"],
    python_requires=">=3.9",
    install_requires=[],
    extras_require={
        "dev": [
            "nox",
            "flake8",
            "pytest",
            "black",
            "markdown-it-py",
        ]
    },
    entry_points={
        "console_scripts": [
            "gemtext2md = gemtext2md:main",
        ],
    },
)
